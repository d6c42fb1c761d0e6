"""Ledger rows to Abacus F11 journal entries.

The input sheet carries one booking per row (``Date``, ``Compte``,
``Contrepartie``, ``Texte1``, ``Montant``, ``Code TVA``); the output is the
wide F11 layout Abacus imports, one entry per input row, VAT extracted from
the gross amount when a VAT code is present.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .amounts import round2, to_float
from .errors import MissingColumnsError
from .excel import read_sheet, write_sheet

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ["Date", "Compte", "Contrepartie", "Texte1", "Montant", "Code TVA"]

# VAT code -> rate in percent
VAT_RATES: Dict[int, float] = {
  111: 7.7, 121: 7.7, 131: 8.1, 132: 2.6,
  141: 8.1, 142: 2.6, 144: 3.8, 311: 7.7,
  312: 2.5, 511: 8.1, 512: 2.6, 516: 100,
  112: 2.5, 122: 2.5, 126: 0, 136: 0,
  116: 0, 200: 0, 400: 0, 401: 0,
  115: 100, 125: 100,
}

VAT_ACCOUNT_COUNTERPART = 1172

F11_COLUMNS = [
  "N° enregistrement", "Version", "Date", "Compte", "Contrepartie", "Texte1", "Montant", "Texte2", "DC",
  "Niveau d'imputation 1", "Contrepartie niveau d'imputation 1", "Numéro du document", "Cours", "Gre cours",
  "Montant ME", "Identificateur écriture collective", "Spec1", "Applicationidentification", "Réserve", "Date de valeur",
  "Position coll.", "Réserve", "N° mandant", "ISO", "ISO2", "Quantité", "Taux", "Niveau d'imputation 2",
  "Contrepartie niveau d'imputation 2", "Fond1", "Fond2", "Réserve", "Réserve", "Réserve", "Champ de code", "Code TVA",
  "Taux TVA", "TVA incl.", "Méthode TVA", "Pays de TVA", "Coeff. TVA", "Compte TVA", "Contrepartie TVA", "DC TVA",
  "Montant TVA", "TVA montant ME", "Reste montant TVA", "Reste TVA montant ME", "Réserve", "Type TVA", "Réserve",
  "Réserve", "Réserve", "Division", "Budgétisés / Réel", "MontantCollCondCrédit", "MEMontantCollCondCrédit", "Coeff1 Euro",
  "Coeff2 Euro", "Intercompany", "Cours2", "Code de consolidation", "Niveau d'imputation 3", "Contrepartie niveau d'imputation 3",
]
F11_SHEET = "Ecritures"
F11_FILENAME = "F11_Ecritures.xlsx"

# Defaults of every F11 field not derived from the input row
F11_DEFAULTS = {
  "Version": "J", "Texte2": "", "DC": "D",
  "Niveau d'imputation 1": 0, "Contrepartie niveau d'imputation 1": 0, "Numéro du document": "",
  "Cours": 0, "Gre cours": "", "Montant ME": 0, "Identificateur écriture collective": "",
  "Spec1": "", "Applicationidentification": "F", "Réserve": "", "Date de valeur": "",
  "Position coll.": 0, "N° mandant": "", "ISO": "CHF", "ISO2": "CHF", "Quantité": 0, "Taux": 0,
  "Niveau d'imputation 2": 0, "Contrepartie niveau d'imputation 2": 0, "Fond1": 0, "Fond2": 0,
  "Champ de code": "", "Méthode TVA": 2, "Pays de TVA": "CH", "Coeff. TVA": 100,
  "TVA montant ME": 0, "Reste montant TVA": 0, "Reste TVA montant ME": 0, "Division": 0,
  "Budgétisés / Réel": 0, "MontantCollCondCrédit": 0, "MEMontantCollCondCrédit": 0,
  "Coeff1 Euro": 1, "Coeff2 Euro": 1, "Intercompany": 0, "Cours2": 0, "Code de consolidation": "",
  "Niveau d'imputation 3": 0, "Contrepartie niveau d'imputation 3": 0,
}


def _blank(value) -> bool:
  return value is None or (isinstance(value, float) and np.isnan(value)) or str(value).strip() == ""


def vat_code(value) -> Optional[int]:
  if _blank(value):
    return None
  try:
    code = int(float(str(value).strip()))
  except ValueError:
    logger.warning(f"Unreadable VAT code {value!r}, treated as none")
    return None
  return code or None


def vat_amount(amount: float, rate: float) -> float:
  """VAT contained in a gross ``amount``, negative as Abacus expects it."""
  if rate <= 0:
    return 0
  return -round2(amount - amount / (1 + rate / 100))


def validate_headers(headers) -> List[str]:
  """Return the required headers absent from ``headers``."""
  present = {str(h).strip() for h in headers}
  return [h for h in REQUIRED_HEADERS if h not in present]


def load_ledger(path: str) -> pd.DataFrame:
  return read_sheet(path, REQUIRED_HEADERS)


def transform_row(row: dict, index: int) -> dict:
  code = vat_code(row.get("Code TVA"))
  amount = to_float(row.get("Montant"))
  texte1 = "" if _blank(row.get("Texte1")) else str(row.get("Texte1"))[:80]
  rate = VAT_RATES.get(code, 0) if code is not None else 0
  contrepartie = row.get("Contrepartie")

  out = dict(F11_DEFAULTS)
  out.update({
    "N° enregistrement": index + 1,
    "Date": row.get("Date"),
    "Compte": row.get("Compte"),
    "Contrepartie": "" if _blank(contrepartie) else contrepartie,
    "Texte1": texte1,
    "Montant": amount,
    "Code TVA": code if code is not None else "",
    "Taux TVA": rate,
    "TVA incl.": "I" if code is not None else "",
    "Compte TVA": row.get("Compte") if code is not None else 0,
    "Contrepartie TVA": VAT_ACCOUNT_COUNTERPART if code is not None else 0,
    "DC TVA": 2 if code is not None else 0,
    "Montant TVA": vat_amount(amount, rate),
    "Type TVA": 2 if code is not None else 0,
  })
  return out


def transform_ledger(df: pd.DataFrame) -> pd.DataFrame:
  """Build the F11 entry sheet from validated ledger rows."""
  missing = validate_headers(df.columns)
  if missing:
    raise MissingColumnsError(missing)
  entries = [transform_row(row, i) for i, row in enumerate(df.to_dict("records"))]
  rows = [[entry[col] for col in F11_COLUMNS] for entry in entries]
  logger.info(f"F11: {len(rows)} entries built")
  return pd.DataFrame(rows, columns=F11_COLUMNS)


@dataclass
class Bucket:
  count: int = 0
  amount: float = 0.0

  def add(self, amount: float):
    self.count += 1
    self.amount = round(self.amount + amount, 2)


@dataclass
class LedgerSummary:
  total_transactions: int = 0
  receipts: Bucket = field(default_factory=Bucket)
  receipts_by_account: Dict[int, Bucket] = field(default_factory=dict)
  disbursements: Bucket = field(default_factory=Bucket)
  salaries: Bucket = field(default_factory=Bucket)
  direct_purchases: Bucket = field(default_factory=Bucket)
  indirect_purchases: Bucket = field(default_factory=Bucket)


def summarize_ledger(entries: pd.DataFrame) -> LedgerSummary:
  """Receipts are bookings on accounts 1000-1999, everything else is paid out."""
  summary = LedgerSummary(total_transactions=len(entries))
  accounts = pd.to_numeric(entries["Compte"], errors="coerce")
  amounts = pd.to_numeric(entries["Montant"], errors="coerce").fillna(0.0)
  for account, amount in zip(accounts, amounts):
    if not np.isnan(account) and 1000 <= account <= 1999:
      summary.receipts.add(amount)
      summary.receipts_by_account.setdefault(int(account), Bucket()).add(amount)
      continue
    summary.disbursements.add(amount)
    if account == 2299:
      summary.salaries.add(amount)
    if 4000 <= account <= 4999:
      summary.direct_purchases.add(amount)
    if 6000 <= account <= 8999:
      summary.indirect_purchases.add(amount)
  return summary


def write_ledger_excel(entries: pd.DataFrame, path: str = F11_FILENAME) -> str:
  return write_sheet(entries, path, F11_SHEET)
