"""Data types shared by the statement parsers and the exporters."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class BankFormat(str, Enum):
  """Statement layouts with a dedicated parser."""

  BCGE = "bcge"
  RAIFFEISEN = "raiffeisen"
  UBS = "ubs"

  @classmethod
  def from_value(cls, value) -> "BankFormat":
    if isinstance(value, cls):
      return value
    try:
      return cls(str(value).strip().lower())
    except ValueError:
      known = ", ".join(m.value for m in cls)
      raise ValueError(f"Unknown bank format {value!r} (expected one of: {known})") from None


class Provenance(Enum):
  """How the debit/credit side of a transaction was decided."""

  BALANCE_DELTA = "balance_delta"
  DASH_MARKER = "dash_marker"
  KEYWORD_GUESS = "keyword_guess"
  DEFAULT_GUESS = "default_guess"

  @property
  def is_guess(self) -> bool:
    return self in (Provenance.KEYWORD_GUESS, Provenance.DEFAULT_GUESS)


@dataclass
class Transaction:
  date: str
  description: str
  debit: Optional[float]
  credit: Optional[float]
  solde: float
  provenance: Provenance = Provenance.BALANCE_DELTA

  @property
  def is_guessed(self) -> bool:
    return self.provenance.is_guess

  @property
  def movement(self) -> float:
    """Signed change of the balance caused by this transaction."""
    return round((self.credit or 0.0) - (self.debit or 0.0), 2)

  def as_row(self) -> dict:
    return {
      "date": self.date,
      "description": self.description,
      "debit": self.debit,
      "credit": self.credit,
      "solde": self.solde,
    }


@dataclass
class ParseReport:
  """Counters collected while parsing one statement.

  Rejected blocks are silently absent from the parser output; this report is
  the only place where they show up.
  """

  bank_format: Optional[BankFormat] = None
  lines_total: int = 0
  noise_lines: int = 0
  record_lines: int = 0
  continuation_lines: int = 0
  orphan_lines: int = 0
  blocks: int = 0
  rejected: Counter = field(default_factory=Counter)
  transactions: int = 0
  guessed: int = 0
  balance_mismatches: int = 0
  opening_balance_found: Optional[bool] = None

  @property
  def rejected_total(self) -> int:
    return sum(self.rejected.values())

  def reject(self, reason: str):
    self.rejected[reason] += 1

  def summary(self) -> str:
    reasons = ", ".join(f"{k}={v}" for k, v in sorted(self.rejected.items())) or "none"
    return (
      f"{self.lines_total} lines ({self.noise_lines} noise, {self.orphan_lines} orphan), "
      f"{self.blocks} blocks, {self.transactions} transactions "
      f"({self.guessed} guessed, {self.balance_mismatches} balance mismatches), "
      f"rejected: {reasons}"
    )
