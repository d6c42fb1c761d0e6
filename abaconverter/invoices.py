"""Invoice lines to an AbaConnect accounts-receivable (DEBI) document.

Lines are grouped by invoice number in the order first seen.  VAT is
computed per line; when the gross line amounts do not add up to the invoice
total, the last line absorbs the difference.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List
from xml.etree import ElementTree as ET

import pandas as pd

from .amounts import round2, to_float
from .excel import read_sheet

logger = logging.getLogger(__name__)

INVOICE_HEADERS = [
  "N° Facture",
  "Date Facture",
  "Client",
  "Montant",
  "Code TVA",
  "TVA Incluse",
  "Total à payer",
  "Référence Paiement",
  "Ligne",
  "Compte",
  "Centre de Coût",
  "Libellé",
]

VAT_RATES = {"511": 0.081, "311": 0.081, "400": 0.0}
TAX_INCLUDED_FLAG = "2"
COLLECTIVE_ACCOUNT = "1100"


def _text(value) -> str:
  if value is None or (isinstance(value, float) and pd.isna(value)):
    return ""
  if isinstance(value, float) and value.is_integer():
    return str(int(value))
  return str(value).strip()


def vat_rate(code) -> float:
  return VAT_RATES.get(_text(code), 0.0)


def _negate(vat: float) -> float:
  # VAT is booked negative; avoid printing -0.00
  return -vat if vat else 0.0


@dataclass
class InvoiceLine:
  number: str
  line: str
  amount: float
  vat_code: str
  excluded: bool
  account: str
  cost_centre: str
  label: str
  gross: float = 0.0
  vat: float = 0.0

  def compute_vat(self):
    """Gross amount and (negative) VAT; ``E`` lines are priced without VAT."""
    rate = vat_rate(self.vat_code)
    if self.excluded:
      vat = round2(self.amount * rate)
      self.gross = round2(self.amount + vat)
    else:
      vat = round2(self.amount * rate / (1 + rate))
      self.gross = self.amount
    self.vat = _negate(vat)

  def rebalance(self, gross: float):
    """Force the gross amount and recompute the VAT it contains."""
    rate = vat_rate(self.vat_code)
    self.gross = gross
    if self.excluded:
      self.vat = _negate(round2(gross / (1 + rate) * rate))
    else:
      self.vat = _negate(round2(gross * rate / (1 + rate)))


@dataclass
class Invoice:
  number: str
  date: str
  customer: str
  total: float
  payment_reference: str
  lines: List[InvoiceLine] = field(default_factory=list)

  def adjust_totals(self) -> bool:
    """Push any gap with the invoice total onto the last line."""
    line_sum = round2(sum(l.gross for l in self.lines))
    if abs(self.total - line_sum) <= 0.01:
      return False
    last = self.lines[-1]
    last.rebalance(round2(self.total - (line_sum - last.gross)))
    logger.info(f"Invoice {self.number}: last line adjusted by {self.total - line_sum:+.2f}")
    return True


@dataclass
class InvoiceExport:
  xml: str
  total_invoices: int
  total_amount: float


EXCEL_EPOCH = "1899-12-30"
_SERIAL_RE = re.compile(r"^\d+(?:\.\d+)?$")


def iso_date(value) -> str:
  """``YYYY-MM-DD`` from a date, a ``dd/mm/yyyy`` or ``dd.mm.yyyy`` text,
  an ISO text or an Excel serial day number."""
  if isinstance(value, (dt.date, pd.Timestamp)):
    return value.strftime("%Y-%m-%d")
  text = _text(value)
  try:
    if _SERIAL_RE.match(text):
      stamp = pd.to_datetime(float(text), unit="D", origin=EXCEL_EPOCH)
    else:
      # day before month unless the text is ISO (year first)
      stamp = pd.to_datetime(text, dayfirst="/" in text or "." in text)
    return stamp.strftime("%Y-%m-%d")
  except (ValueError, TypeError, OverflowError) as e:
    raise ValueError(f"Date de facture invalide : {text!r}") from e


def group_invoices(df: pd.DataFrame) -> List[Invoice]:
  invoices: Dict[str, Invoice] = {}
  for row in df.to_dict("records"):
    number = _text(row.get("N° Facture"))
    invoice = invoices.get(number)
    if invoice is None:
      invoice = Invoice(
        number=number,
        date=iso_date(row.get("Date Facture")),
        customer=_text(row.get("Client")),
        total=round2(to_float(row.get("Total à payer"))),
        payment_reference=_text(row.get("Référence Paiement")),
      )
      invoices[number] = invoice
    line = InvoiceLine(
      number=number,
      line=_text(row.get("Ligne")),
      amount=to_float(row.get("Montant")),
      vat_code=_text(row.get("Code TVA")),
      excluded=_text(row.get("TVA Incluse")).upper() == "E",
      account=_text(row.get("Compte")),
      cost_centre=_text(row.get("Centre de Coût")),
      label=_text(row.get("Libellé")),
    )
    line.compute_vat()
    invoice.lines.append(line)
  result = list(invoices.values())
  for invoice in result:
    invoice.adjust_totals()
  return result


def _sub(parent: ET.Element, tag: str, text=None, **attrs) -> ET.Element:
  elem = ET.SubElement(parent, tag, attrs)
  if text is not None:
    elem.text = str(text)
  return elem


def _payment_term(doc: ET.Element):
  term = _sub(doc, "PaymentTerm", mode="SAVE")
  for tag, value in (
    ("Number", "1"), ("CopyFromTable", "true"), ("Type", "0"),
    ("PartialPaymentMonthly", "false"), ("NumberOfPartialPayments", "0"),
    ("DeadlineInDays", "0"), ("DiscountDays1", "0"), ("DiscountPercentage1", "0.00"),
    ("DiscountDays2", "0"), ("DiscountPercentage2", "0.00"),
    ("DiscountDays3", "0"), ("DiscountPercentage3", "0.00"),
  ):
    _sub(term, tag, value)
  partial = _sub(term, "PartialPaymentTerm", mode="SAVE")
  for tag, value in (
    ("Number", "0"), ("DeadlineInDays", "0"), ("DiscountDays", "0"),
    ("DiscountPercentage", "0.00"), ("AmountInPercentage", "0.00"), ("Amount", "0.00"),
  ):
    _sub(partial, tag, value)


def build_invoice_xml(invoices: List[Invoice]) -> str:
  root = ET.Element("AbaConnectContainer")
  task = _sub(root, "Task")
  parameter = _sub(task, "Parameter")
  _sub(parameter, "Application", "DEBI")
  _sub(parameter, "Id", "Belege")
  _sub(parameter, "MapId", "AbaDefault")
  _sub(parameter, "Version", "2015.00")
  transaction = _sub(task, "Transaction", id="1")

  for unique_ref, invoice in enumerate(invoices, start=1):
    doc = _sub(transaction, "Document", mode="SAVE")
    _sub(doc, "DocumentCode", "F")
    _sub(doc, "CustomerNumber", invoice.customer)
    _sub(doc, "Number", "")
    _sub(doc, "UniqueReference", unique_ref)
    _sub(doc, "AccountReceivableDate", invoice.date)
    _sub(doc, "GeneralLedgerDate", invoice.date)
    _sub(doc, "DispositionDate", invoice.date)
    _sub(doc, "Currency", "CHF")
    _sub(doc, "Amount", f"{invoice.total:.2f}")
    _sub(doc, "KeyAmount", f"{invoice.total:.2f}")
    _sub(doc, "ReminderProcedure", "NORM")
    _sub(doc, "GroupNumber1", "0")
    _sub(doc, "NoTax", "false")
    _sub(doc, "PaymentReferenceLine", invoice.payment_reference or None)
    _sub(doc, "CollectiveAccount", COLLECTIVE_ACCOUNT)

    for line in invoice.lines:
      item = _sub(doc, "LineItem", mode="SAVE")
      _sub(item, "Number", line.line)
      _sub(item, "Amount", f"{line.gross:.2f}")
      _sub(item, "KeyAmount", f"{line.gross:.2f}")
      _sub(item, "CreditAccount", line.account)
      _sub(item, "Project", "0")
      _sub(item, "CreditCostCentre1", line.cost_centre)
      _sub(item, "CreditCostCentre2", "0")
      _sub(item, "TaxMethod", "1")
      _sub(item, "TaxCode", line.vat_code)
      _sub(item, "TaxIncluded", TAX_INCLUDED_FLAG)
      _sub(item, "TaxAmount", f"{line.vat:.2f}")
      _sub(item, "TaxDateValidFrom", invoice.date)
      _sub(item, "Text", line.label[:80])

    _sub(doc, "Reference", invoice.lines[0].label[:60])
    _payment_term(doc)

  ET.indent(root)
  return '<?xml version="1.0" encoding="utf-8"?>\n' + ET.tostring(root, encoding="unicode")


def convert_invoices(df: pd.DataFrame) -> InvoiceExport:
  invoices = group_invoices(df)
  xml = build_invoice_xml(invoices)
  total = round2(sum(i.total for i in invoices))
  logger.info(f"DEBI: {len(invoices)} invoices, total {total:.2f}")
  return InvoiceExport(xml=xml, total_invoices=len(invoices), total_amount=total)


def load_invoices(path: str) -> pd.DataFrame:
  return read_sheet(path, INVOICE_HEADERS)


def write_invoice_xml(export: InvoiceExport, path: str = "AbaConnect_Export.xml") -> str:
  with open(path, "w", encoding="utf-8") as fh:
    fh.write(export.xml)
  logger.info(f"XML saved ➜ {path}")
  return path
