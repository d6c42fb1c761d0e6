"""Converts bank statement PDFs into transaction spreadsheets.

The bank layout is given explicitly; the text of the PDF is handed to the
matching parser and the transactions are written to a ``Relevé`` sheet.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

import pandas as pd

from .errors import NoTransactionsFound
from .excel import write_sheet
from .models import BankFormat, ParseReport, Transaction
from .pdf_text import DEFAULT_Y_TOLERANCE, extract_statement_text
from .statement_parsers import check_balance_chain, get_parser

logger = logging.getLogger(__name__)

STATEMENT_COLUMNS = ["Date", "Description / Texte", "Débit (-)", "Crédit (+)", "Solde (CHF)"]
STATEMENT_WIDTHS = [12, 60, 15, 15, 15]
STATEMENT_SHEET = "Relevé"


def summarize(transactions: List[Transaction]) -> dict:
  return {
    "transactions": len(transactions),
    "total_debit": round(sum(t.debit or 0.0 for t in transactions), 2),
    "total_credit": round(sum(t.credit or 0.0 for t in transactions), 2),
    "guessed": sum(1 for t in transactions if t.is_guessed),
  }


class BankStatementConverter:
  def __init__(self, bank_format, layout: str = "rows", y_tol: float = DEFAULT_Y_TOLERANCE):
    self.bank_format = BankFormat.from_value(bank_format)
    self.layout = layout
    self.y_tol = y_tol
    self.parser = get_parser(self.bank_format)
    self.last_report: Optional[ParseReport] = None

  def convert_text(self, text: str) -> List[Transaction]:
    report = ParseReport()
    transactions = self.parser.parse(text, report)
    self.last_report = report
    broken = check_balance_chain(transactions)
    if broken:
      logger.warning(f"Balance chain broken at {len(broken)} row(s): {broken[:10]}")
    return transactions

  def convert(self, pdf_path: str) -> List[Transaction]:
    """Extract the transactions of one PDF; raise if none are found."""
    text = extract_statement_text(pdf_path, layout=self.layout, y_tol=self.y_tol)
    transactions = self.convert_text(text)
    if not transactions:
      raise NoTransactionsFound(os.path.basename(pdf_path))
    logger.info(f"{len(transactions)} transactions extracted from {pdf_path}")
    return transactions

  @staticmethod
  def to_dataframe(transactions: List[Transaction]) -> pd.DataFrame:
    rows = [
      [t.date, t.description, t.debit, t.credit, t.solde]
      for t in transactions
    ]
    return pd.DataFrame(rows, columns=STATEMENT_COLUMNS)

  def write_excel(self, transactions: List[Transaction], path: str) -> str:
    return write_sheet(self.to_dataframe(transactions), path, STATEMENT_SHEET, STATEMENT_WIDTHS)

  @staticmethod
  def default_output_path(pdf_path: str, output_dir: Optional[str] = None) -> str:
    stem = os.path.splitext(os.path.basename(pdf_path))[0]
    folder = output_dir if output_dir is not None else os.path.dirname(pdf_path)
    return os.path.join(folder, f"{stem}_Converti.xlsx")

  def convert_to_excel(
    self, pdf_path: str, output_path: Optional[str] = None, output_dir: Optional[str] = None
  ) -> str:
    """Convert one PDF and write ``<name>_Converti.xlsx``; return its path."""
    transactions = self.convert(pdf_path)
    out_path = output_path or self.default_output_path(pdf_path, output_dir)
    return self.write_excel(transactions, out_path)
