import datetime as dt
import os
import tempfile
import unittest
from xml.etree import ElementTree as ET

import pandas as pd

from abaconverter.errors import MissingColumnsError
from abaconverter.invoices import (
  INVOICE_HEADERS,
  InvoiceLine,
  convert_invoices,
  group_invoices,
  iso_date,
  load_invoices,
  write_invoice_xml,
)


def _line(**overrides):
  values = dict(
    number="F1", line="1", amount=100.0, vat_code="511", excluded=False,
    account="3200", cost_centre="0", label="Conseil",
  )
  values.update(overrides)
  return InvoiceLine(**values)


def _invoices():
  return pd.DataFrame([
    {"N° Facture": "F-001", "Date Facture": "15.03.2024", "Client": 1001, "Montant": 100,
     "Code TVA": "511", "TVA Incluse": "E", "Total à payer": 162.15,
     "Référence Paiement": "RF18 5390 0754 7034", "Ligne": 1, "Compte": 3200,
     "Centre de Coût": 10, "Libellé": "Honoraires mars"},
    {"N° Facture": "F-001", "Date Facture": "15.03.2024", "Client": 1001, "Montant": 54.05,
     "Code TVA": "400", "TVA Incluse": "I", "Total à payer": 162.15,
     "Référence Paiement": "RF18 5390 0754 7034", "Ligne": 2, "Compte": 3400,
     "Centre de Coût": 10, "Libellé": "Débours"},
    {"N° Facture": "F-002", "Date Facture": dt.date(2024, 3, 20), "Client": 1002, "Montant": 100,
     "Code TVA": "311", "TVA Incluse": "I", "Total à payer": 101.00,
     "Référence Paiement": None, "Ligne": 1, "Compte": 3200,
     "Centre de Coût": 0, "Libellé": "Abonnement annuel"},
  ])


class InvoiceLineTest(unittest.TestCase):
  def test_vat_excluded(self):
    line = _line(excluded=True)
    line.compute_vat()
    self.assertEqual(line.gross, 108.1)
    self.assertEqual(line.vat, -8.1)

  def test_vat_included(self):
    line = _line(amount=108.1)
    line.compute_vat()
    self.assertEqual(line.gross, 108.1)
    self.assertEqual(line.vat, -8.1)

  def test_zero_rate(self):
    line = _line(vat_code="400")
    line.compute_vat()
    self.assertEqual(line.vat, 0.0)
    self.assertEqual(f"{line.vat:.2f}", "0.00")


class GroupInvoicesTest(unittest.TestCase):
  def test_grouping_and_adjustment(self):
    invoices = group_invoices(_invoices())
    self.assertEqual([i.number for i in invoices], ["F-001", "F-002"])
    self.assertEqual(len(invoices[0].lines), 2)
    self.assertEqual(invoices[0].date, "2024-03-15")
    # 108.10 + 54.05 matches the total, nothing to adjust
    self.assertEqual([l.gross for l in invoices[0].lines], [108.1, 54.05])
    # 100.00 against 101.00: the last line takes the difference
    self.assertEqual(invoices[1].lines[0].gross, 101.0)
    self.assertEqual(invoices[1].lines[0].vat, -7.57)

  def test_iso_date(self):
    self.assertEqual(iso_date("05.03.2024"), "2024-03-05")
    self.assertEqual(iso_date(pd.Timestamp("2024-03-05")), "2024-03-05")
    self.assertEqual(iso_date("2024-03-05"), "2024-03-05")

  def test_slash_date_is_day_first(self):
    self.assertEqual(iso_date("01/03/2024"), "2024-03-01")
    self.assertEqual(iso_date("5/3/2024"), "2024-03-05")

  def test_excel_serial_date(self):
    self.assertEqual(iso_date(45352), "2024-03-01")
    self.assertEqual(iso_date(45352.0), "2024-03-01")
    self.assertEqual(iso_date("45352"), "2024-03-01")

  def test_invalid_date(self):
    with self.assertRaises(ValueError):
      iso_date("")
    with self.assertRaises(ValueError):
      iso_date("pas une date")


class InvoiceXmlTest(unittest.TestCase):
  def setUp(self):
    self.export = convert_invoices(_invoices())
    self.root = ET.fromstring(self.export.xml.encode("utf-8"))

  def test_totals(self):
    self.assertEqual(self.export.total_invoices, 2)
    self.assertEqual(self.export.total_amount, 263.15)
    self.assertTrue(self.export.xml.startswith('<?xml version="1.0" encoding="utf-8"?>'))

  def test_parameter(self):
    parameter = self.root.find("Task/Parameter")
    self.assertEqual(parameter.findtext("Application"), "DEBI")
    self.assertEqual(parameter.findtext("Id"), "Belege")
    self.assertEqual(parameter.findtext("Version"), "2015.00")

  def test_documents(self):
    docs = self.root.findall("Task/Transaction/Document")
    self.assertEqual(len(docs), 2)
    first, second = docs
    self.assertEqual(first.get("mode"), "SAVE")
    self.assertEqual(first.findtext("UniqueReference"), "1")
    self.assertEqual(first.findtext("CustomerNumber"), "1001")
    self.assertEqual(first.findtext("Amount"), "162.15")
    self.assertEqual(first.findtext("PaymentReferenceLine"), "RF18 5390 0754 7034")
    self.assertEqual(first.findtext("Reference"), "Honoraires mars")
    self.assertEqual(second.findtext("UniqueReference"), "2")
    self.assertEqual(second.findtext("AccountReceivableDate"), "2024-03-20")
    self.assertIsNone(second.find("PaymentReferenceLine").text)

  def test_line_items(self):
    first, second = self.root.findall("Task/Transaction/Document")
    items = first.findall("LineItem")
    self.assertEqual([i.findtext("Amount") for i in items], ["108.10", "54.05"])
    self.assertEqual([i.findtext("TaxAmount") for i in items], ["-8.10", "0.00"])
    self.assertEqual(items[0].findtext("CreditAccount"), "3200")
    self.assertEqual(items[0].findtext("TaxIncluded"), "2")
    self.assertEqual(second.find("LineItem").findtext("TaxAmount"), "-7.57")
    self.assertIsNotNone(first.find("PaymentTerm/PartialPaymentTerm"))


class InvoiceFilesTest(unittest.TestCase):
  def test_load_and_write(self):
    with tempfile.TemporaryDirectory() as tmp:
      source = os.path.join(tmp, "factures.xlsx")
      _invoices().to_excel(source, index=False)
      export = convert_invoices(load_invoices(source))
      self.assertEqual(export.total_invoices, 2)
      out_path = write_invoice_xml(export, os.path.join(tmp, "AbaConnect_Export.xml"))
      with open(out_path, "rb") as fh:
        root = ET.fromstring(fh.read())
      self.assertEqual(len(root.findall("Task/Transaction/Document")), 2)

  def test_missing_columns(self):
    with tempfile.TemporaryDirectory() as tmp:
      source = os.path.join(tmp, "factures.xlsx")
      _invoices().drop(columns=["Libellé"]).to_excel(source, index=False)
      with self.assertRaises(MissingColumnsError) as ctx:
        load_invoices(source)
      self.assertEqual(ctx.exception.missing, ["Libellé"])

  def test_headers(self):
    self.assertEqual(len(INVOICE_HEADERS), 12)


if __name__ == '__main__':
  unittest.main()
