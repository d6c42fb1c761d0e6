"""Supplier and customer address sheets to AbaConnect XML, and back.

Suppliers are imported into the KRED application, customers into DEBI.
Each spreadsheet row becomes one ``Transaction`` numbered from a configurable
start number.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

import pandas as pd

from .excel import write_sheet

logger = logging.getLogger(__name__)

SUPPLIER_COLUMNS = [
  "Nom", "Ligne supplémentaire", "Adresse", "Numero", "Code postal", "Ville", "Pays",
  "Téléphone 1", "WWW", "E-mail", "N° TVA", "IBAN",
]
CUSTOMER_COLUMNS = [
  "CodeName", "Nom", "Ligne supplémentaire", "Adresse", "Numero", "Code postal", "Ville",
]
SUPPLIER_SHEET = "Fournisseurs"
CUSTOMER_SHEET = "Clients"

MODES = ("INSERT", "SAVE", "UPDATE")
DEFAULT_SUPPLIER_START = 450
DEFAULT_CUSTOMER_START = 86
IBAN_LENGTH = 21  # Swiss and Liechtenstein IBANs

Fields = Sequence[Tuple[str, object]]


def supplier_template() -> pd.DataFrame:
  return pd.DataFrame(columns=SUPPLIER_COLUMNS)


def customer_template() -> pd.DataFrame:
  return pd.DataFrame(columns=CUSTOMER_COLUMNS)


def _cell(row: dict, key: str) -> str:
  value = row.get(key)
  if value is None or (isinstance(value, float) and pd.isna(value)):
    return ""
  if isinstance(value, float) and value.is_integer():
    return str(int(value))
  return str(value).strip()


def code_name(name: str) -> str:
  return name.upper()[:16]


def split_ibans(value: str) -> List[str]:
  """IBANs are newline-separated in one cell; spaces and dashes are dropped."""
  return [re.sub(r"[\s-]", "", part) for part in value.split("\n") if part.strip()]


def _check_mode(mode: str) -> str:
  mode = mode.upper()
  if mode not in MODES:
    raise ValueError(f"Unknown mode {mode!r} (expected one of: {', '.join(MODES)})")
  return mode


def _fill(parent: ET.Element, fields: Fields):
  for tag, value in fields:
    elem = ET.SubElement(parent, tag)
    if value not in (None, ""):
      elem.text = str(value)


def _container(application: str, task_id: str, version: str) -> Tuple[ET.Element, ET.Element]:
  root = ET.Element("AbaConnectContainer")
  ET.SubElement(root, "TaskCount").text = "1"
  task = ET.SubElement(root, "Task")
  _fill(ET.SubElement(task, "Parameter"), (
    ("Application", application), ("Id", task_id), ("MapId", "AbaDefault"), ("Version", version),
  ))
  return root, task


def _serialize(root: ET.Element) -> str:
  ET.indent(root)
  return '<?xml version="1.0" encoding="utf-8"?>\n' + ET.tostring(root, encoding="unicode")


def _address_fields(row: dict, number: Optional[int], country: str) -> Fields:
  name = _cell(row, "Nom")
  street, house = _cell(row, "Adresse"), _cell(row, "Numero")
  fields = [
    ("CodeName", _cell(row, "CodeName") or code_name(name)),
  ]
  if number is not None:
    fields.append(("Number", number))
  fields += [
    ("Name", name),
    ("FirstName", ""),
    ("AdditionalLine", _cell(row, "Ligne supplémentaire")),
    ("Line1", street),
    ("Country", country),
    ("ZIP", _cell(row, "Code postal")),
    ("City", _cell(row, "Ville")),
    ("Website", _cell(row, "WWW")),
    ("Email", _cell(row, "E-mail")),
    ("Phone1", _cell(row, "Téléphone 1")),
    ("Language", "fr"),
    ("SubjectType", "2"),
    ("AddressValidAsOf", "2021-01-01"),
    ("TaxIDSwitzerland", _cell(row, "N° TVA")),
    ("HouseNumber", house),
    ("Street", street),
    ("StreetHouseNumber", f"{street} {house}".strip()),
  ]
  return fields


def _beneficiaries(supplier: ET.Element, ibans: List[str], number: int, country: str):
  for idx, iban in enumerate(ibans, start=1):
    if len(iban) != IBAN_LENGTH:
      logger.warning(f"Supplier {number}: IBAN {iban!r} ignored (not {IBAN_LENGTH} characters)")
      continue
    # QR-IBAN when the institution id starts with 3
    beneficiary_type = "80" if iban[4] == "3" else "23"
    _fill(ET.SubElement(supplier, "BeneficiaryAccount", mode="SAVE"), (
      ("BeneficiaryType", beneficiary_type),
      ("BeneficiaryCountry", country),
      ("InternalBeneficiaryAccountNumber", idx),
      ("BeneficiaryAccountNumber", iban),
      ("BankNumber", "0"),
      ("Inactive", "false"),
    ))
    _fill(ET.SubElement(supplier, "PaymentMethod", mode="SAVE"), (
      ("BeneficiaryAddressNumber", number),
      ("BeneficiaryNumber", idx),
      ("PaymentMethodNumber", idx),
      ("BeneficiaryCountry", country),
      ("BeneficiaryType", beneficiary_type),
      ("CompanyPaymentCentreNumber", "1"),
    ))
  if ibans:
    _fill(ET.SubElement(supplier, "OrderProcessingData", mode="SAVE"), (
      ("Currency", "CHF"),
      ("PriceCode", "0"),
      ("DiscountCode", "0"),
    ))


def suppliers_to_xml(
  df: pd.DataFrame, mode: str = "INSERT", start_number: int = DEFAULT_SUPPLIER_START
) -> str:
  """KRED supplier import, one transaction per row."""
  mode = _check_mode(mode)
  root, task = _container("KRED", "Supplier", "2024.00")
  rows = df.to_dict("records")
  for index, row in enumerate(rows):
    number = start_number + index
    country = _cell(row, "Pays")
    transaction = ET.SubElement(task, "Transaction", id=str(index + 1))
    supplier = ET.SubElement(transaction, "Supplier", mode=mode)
    ET.SubElement(supplier, "Number").text = str(number)
    _fill(ET.SubElement(supplier, "AddressData", mode="SAVE"), _address_fields(row, number, country))
    _fill(ET.SubElement(supplier, "CurrencyData", mode="SAVE"), (("Currency", "CHF"),))
    _fill(ET.SubElement(supplier, "DetailData", mode="SAVE"), (
      ("Number", number),
      ("AddressNumber", number),
      ("Condition", "1"),
      ("CurrencyCode", "CHF"),
      ("AdviceAddressNumber", number),
      ("PaymentMethod", "1"),
    ))
    _beneficiaries(supplier, split_ibans(_cell(row, "IBAN")), number, country)
  logger.info(f"KRED: {len(rows)} suppliers from number {start_number} ({mode})")
  return _serialize(root)


def customers_to_xml(
  df: pd.DataFrame, mode: str = "INSERT", start_number: int = DEFAULT_CUSTOMER_START
) -> str:
  """DEBI customer import, one transaction per row."""
  mode = _check_mode(mode)
  root, task = _container("DEBI", "Kunden", "2022.00")
  rows = df.to_dict("records")
  for index, row in enumerate(rows):
    number = start_number + index
    transaction = ET.SubElement(task, "Transaction", id=str(index + 1))
    customer = ET.SubElement(transaction, "Customer", mode=mode)
    name = _cell(row, "Nom")
    _fill(customer, (
      ("CodeName", _cell(row, "CodeName") or code_name(name)),
      ("CustomerNumber", number),
      ("PaymentTermNumber", "1"),
      ("DefaultCurrency", "CHF"),
      ("ReminderProcedure", "NORM"),
    ))
    _fill(ET.SubElement(customer, "AddressData", mode=mode), _address_fields(row, None, "CH"))
    _fill(ET.SubElement(customer, "CurrencyData", mode=mode), (
      ("Currency", "CHF"),
      ("StandardProcedure", "3"),
    ))
  logger.info(f"DEBI: {len(rows)} customers from number {start_number} ({mode})")
  return _serialize(root)


def suppliers_from_xml(xml_text) -> pd.DataFrame:
  """Read a KRED supplier export back into the supplier sheet layout."""
  root = ET.fromstring(xml_text)
  rows = []
  for supplier in root.iter("Supplier"):
    address = supplier.find("AddressData")

    def field(tag: str) -> str:
      if address is None:
        return ""
      return (address.findtext(tag) or "").strip()

    ibans = [
      (acc.findtext("BeneficiaryAccountNumber") or "").strip()
      for acc in supplier.iter("BeneficiaryAccount")
    ]
    rows.append({
      "Nom": field("Name"),
      "Ligne supplémentaire": field("AdditionalLine"),
      "Adresse": field("Line1"),
      "Numero": field("HouseNumber"),
      "Code postal": field("ZIP"),
      "Ville": field("City"),
      "Pays": field("Country"),
      "Téléphone 1": field("Phone1"),
      "WWW": field("Website"),
      "E-mail": field("Email"),
      "N° TVA": field("TaxIDSwitzerland"),
      "IBAN": "\n".join(i for i in ibans if len(i) == IBAN_LENGTH),
    })
  logger.info(f"KRED: {len(rows)} suppliers read back")
  return pd.DataFrame(rows, columns=SUPPLIER_COLUMNS)


def write_suppliers_excel(df: pd.DataFrame, path: str = "Adresses_Fournisseurs_output.xlsx") -> str:
  return write_sheet(df, path, SUPPLIER_SHEET)


def write_xml(xml: str, path: str = "Adresses.xml") -> str:
  with open(path, "w", encoding="utf-8") as fh:
    fh.write(xml)
  logger.info(f"XML saved ➜ {path}")
  return path
