"""
AbaConverter Package

Converts bank statements, CAMT notifications, ledgers, invoices and address
lists into the formats the Abacus ERP imports.
"""

from .converter import BankStatementConverter
from .errors import CamtParseError, MissingColumnsError, NoTransactionsFound
from .models import BankFormat, ParseReport, Provenance, Transaction
from .statement_parsers import check_balance_chain, get_parser, parse_statement

__version__ = "1.0.0"
__author__ = "AbaConverter Team"

__all__ = [
  "BankStatementConverter",
  "BankFormat",
  "CamtParseError",
  "MissingColumnsError",
  "NoTransactionsFound",
  "ParseReport",
  "Provenance",
  "Transaction",
  "check_balance_chain",
  "get_parser",
  "parse_statement",
]
