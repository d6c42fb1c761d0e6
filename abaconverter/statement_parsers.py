"""Bank statement parsers: extracted PDF text in, ordered transactions out.

Each supported layout has one parser registered against its ``BankFormat``.
The layout is always chosen by the caller; nothing here guesses it from the
text.

* BCGE prints ``date text amount balance`` on the first line of a record.
  The balance column is authoritative and the side of the amount is derived
  from the balance delta.
* Raiffeisen prints ``amount balance value-date`` at the end of a record and
  opens the table with a "Solde reporté" line that seeds the running balance.
* UBS marks the side with a dash: ``- 200.00`` is a credit and ``200.00 -`` a
  debit.  The trailing amount is the balance.

Where neither the balance delta nor a dash gives the side, a short keyword
list is consulted and debit is the default.  Those transactions carry a
``KEYWORD_GUESS`` or ``DEFAULT_GUESS`` provenance.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Type

from .amounts import (
  DATE,
  DATE_RE,
  LOOSE_AMOUNT,
  SWISS_AMOUNT,
  find_amounts,
  to_float,
)
from .models import BankFormat, ParseReport, Provenance, Transaction
from .statement_lines import (
  NOISE_PROFILES,
  LineClassifier,
  TransactionBlock,
  fold,
  segment_lines,
)

logger = logging.getLogger(__name__)

__all__ = [
  "CREDIT_KEYWORDS",
  "FALLBACK_MIN_AMOUNT",
  "PARSERS",
  "StatementParser",
  "BcgeStatementParser",
  "RaiffeisenStatementParser",
  "UbsStatementParser",
  "assemble",
  "check_balance_chain",
  "get_parser",
  "parse_statement",
  "register_parser",
  "resolve_sign",
]

# Folded description fragments that suggest money coming in.  A guess only.
CREDIT_KEYWORDS = (
  "credit",
  "bonification",
  "versement",
  "donneur d'ordre",
  "originator",
  "virement recu",
)

CURRENCY_CODE_RE = re.compile(
  r"(?<![A-Za-z])(?:CHF|EUR|USD|GBP|JPY|CAD|AUD|SEK|NOK|DKK|PLN|CZK)(?![A-Za-z])"
)

_BALANCE_TOLERANCE = 0.005


def _blank(match: re.Match) -> str:
  return " " * len(match.group(0))


def _collapse(text: str) -> str:
  return re.sub(r"\s+", " ", text).strip()


def _strip_phrases(text: str, phrases: Sequence[str]) -> str:
  for phrase in phrases:
    text = re.sub(phrase, " ", text, flags=re.IGNORECASE)
  return _collapse(text)


def _money(value: Optional[float]) -> Optional[float]:
  return None if value is None else round(value, 2)


def resolve_sign(
  amount: float, delta: Optional[float], text: str
) -> Tuple[Optional[float], Optional[float], Provenance]:
  """Decide the side of ``amount`` and return ``(debit, credit, provenance)``.

  A non-zero balance delta decides structurally; a zero amount (nothing read
  from the text) then becomes ``abs(delta)``.  Without a usable delta the
  keyword list is consulted and debit is the default.
  """
  if delta:
    amount = amount or abs(delta)
    if delta < 0:
      return amount, None, Provenance.BALANCE_DELTA
    return None, amount, Provenance.BALANCE_DELTA

  folded = fold(text)
  if any(k in folded for k in CREDIT_KEYWORDS):
    return None, amount, Provenance.KEYWORD_GUESS
  return amount, None, Provenance.DEFAULT_GUESS


def assemble(
  transactions: Sequence[Transaction], report: Optional[ParseReport] = None
) -> List[Transaction]:
  """Finalise parsed transactions in document order."""
  result: List[Transaction] = []
  for txn in transactions:
    if txn.debit is not None and txn.credit is not None:
      raise ValueError(f"Transaction of {txn.date} carries both a debit and a credit")
    result.append(
      Transaction(
        date=txn.date,
        description=txn.description,
        debit=_money(txn.debit),
        credit=_money(txn.credit),
        solde=round(txn.solde, 2),
        provenance=txn.provenance,
      )
    )
  if report is not None:
    report.transactions += len(result)
    report.guessed += sum(1 for t in result if t.is_guessed)
  return result


def check_balance_chain(
  transactions: Sequence[Transaction], tolerance: float = _BALANCE_TOLERANCE
) -> List[int]:
  """Return the indexes whose balance does not follow from the previous one."""
  broken = []
  for i in range(1, len(transactions)):
    expected = round(transactions[i - 1].solde + transactions[i].movement, 2)
    if abs(expected - transactions[i].solde) > tolerance:
      broken.append(i)
  return broken


class StatementParser(ABC):
  """Turn the text of one statement into transactions."""

  bank_format: BankFormat
  placeholder = "(transaction non décrite)"

  def __init__(self):
    self.classifier = LineClassifier(NOISE_PROFILES[self.bank_format])

  @property
  def tag(self) -> str:
    return self.bank_format.value.upper()

  def parse(self, text: str, report: Optional[ParseReport] = None) -> List[Transaction]:
    report = report if report is not None else ParseReport()
    report.bank_format = self.bank_format
    lines = (text or "").splitlines()
    logger.info(f"[{self.tag}] {len(lines)} lines to analyse")
    transactions = assemble(self._parse_lines(lines, report), report)
    logger.info(f"[{self.tag}] {report.summary()}")
    return transactions

  def segment(self, lines: Sequence[str], report: ParseReport) -> List[TransactionBlock]:
    return segment_lines(lines, self.classifier, report)

  def _reject(self, report: ParseReport, block: TransactionBlock, reason: str):
    report.reject(reason)
    logger.debug(f"[{self.tag}] block {block.date} dropped ({reason}): {block.text[:80]!r}")

  @abstractmethod
  def _parse_lines(self, lines: Sequence[str], report: ParseReport) -> List[Transaction]:
    ...


PARSERS: Dict[BankFormat, Type[StatementParser]] = {}


def register_parser(bank_format: BankFormat):
  """Class decorator binding a parser to its statement layout."""
  def decorator(cls: Type[StatementParser]) -> Type[StatementParser]:
    cls.bank_format = bank_format
    PARSERS[bank_format] = cls
    return cls
  return decorator


def get_parser(bank_format) -> StatementParser:
  fmt = BankFormat.from_value(bank_format)
  try:
    parser_cls = PARSERS[fmt]
  except KeyError:
    raise ValueError(f"No parser registered for {fmt.value}") from None
  return parser_cls()


def parse_statement(
  text: str, bank_format, report: Optional[ParseReport] = None
) -> List[Transaction]:
  return get_parser(bank_format).parse(text, report)


# ---------------------------------------------------------------------------
# BCGE
# ---------------------------------------------------------------------------

BCGE_BOILERPLATE = (
  r"\bCHF\b",
  r"/C/",
  r"Donneur d'ordre\s*:?",
  r"Communication\s*/\s*R[ée]f[ée]rence\s*:?",
)


@dataclass
class _BcgeRow:
  date: str
  description: str
  amount: float
  balance: float
  amount_read: bool
  block: TransactionBlock


@register_parser(BankFormat.BCGE)
class BcgeStatementParser(StatementParser):
  """Last amount of the first line is the balance, the one before is the amount."""

  min_description = 2

  def mask(self, line: str) -> str:
    """Blank out dates and currency codes, keeping every column offset."""
    line = DATE_RE.sub(_blank, line)
    return CURRENCY_CODE_RE.sub(_blank, line)

  def extract(self, block: TransactionBlock, report: ParseReport) -> Optional[_BcgeRow]:
    masked = self.mask(block.first_line)
    amounts = find_amounts(masked)
    if not amounts:
      self._reject(report, block, "no_amount")
      return None

    balance = to_float(amounts[-1].group(0))
    if len(amounts) >= 2:
      amount_match = amounts[-2]
      amount, amount_read = to_float(amount_match.group(0)), True
    else:
      amount_match = amounts[-1]
      amount, amount_read = 0.0, False

    text = " ".join([masked[:amount_match.start()], *block.continuation])
    description = _strip_phrases(text, BCGE_BOILERPLATE)
    if len(description) < self.min_description:
      self._reject(report, block, "short_description")
      return None
    return _BcgeRow(block.date, description, amount, balance, amount_read, block)

  def _parse_lines(self, lines, report):
    blocks = self.segment(lines, report)
    logger.info(f"[{self.tag}] {len(blocks)} transaction blocks found")
    rows = [row for row in (self.extract(b, report) for b in blocks) if row]

    transactions = []
    previous: Optional[float] = None
    for row in rows:
      delta = None if previous is None else round(row.balance - previous, 2)
      previous = row.balance
      debit, credit, provenance = resolve_sign(row.amount, delta, row.description)
      if not (debit or credit):
        # balance-only row (carried forward balance): baseline for the next one
        self._reject(report, row.block, "zero_amount")
        continue
      if row.amount_read and delta and abs(abs(delta) - row.amount) > _BALANCE_TOLERANCE:
        report.balance_mismatches += 1
      transactions.append(
        Transaction(row.date, row.description, debit, credit, row.balance, provenance)
      )
    return transactions


# ---------------------------------------------------------------------------
# Raiffeisen
# ---------------------------------------------------------------------------

_LOOSE = rf"(?<![\d'’.,]){LOOSE_AMOUNT}(?![\d.,])"
RAIFFEISEN_ANCHOR_RE = re.compile(rf"({_LOOSE})\s+({_LOOSE})\s+({DATE})")

RAIFFEISEN_NOISE_PHRASES = (
  r"D[ée]tails supprim[ée]s",
  r"\b(?:EUR|USD|GBP)\s*\d[\d' ]*[.,]\d{2}",
  r"taux de change\s*:?\s*[\d.,]+",
)


@dataclass
class _RaiffeisenRecord:
  date: str
  description: str
  printed_amount: float
  balance: float
  block: TransactionBlock


@register_parser(BankFormat.RAIFFEISEN)
class RaiffeisenStatementParser(StatementParser):
  """Records end with ``amount balance value-date``; balance carried forward."""

  placeholder = "(paiement / virement non décrit)"

  def opening_balance(self, lines: Sequence[str]) -> Optional[float]:
    for line in lines:
      if "soldereporte" in fold(line).replace(" ", ""):
        amounts = find_amounts(line, loose=True)
        if amounts:
          return to_float(amounts[-1].group(0))
    return None

  def extract(self, block: TransactionBlock, report: ParseReport) -> Optional[_RaiffeisenRecord]:
    joined = _collapse(block.text)
    anchors = list(RAIFFEISEN_ANCHOR_RE.finditer(joined))
    if not anchors:
      self._reject(report, block, "no_anchor")
      return None
    anchor = anchors[-1]

    rest = joined[:anchor.start()] + " " + joined[anchor.end():]
    rest = rest.strip()
    if rest.startswith(block.date):
      rest = rest[len(block.date):]
    description = _strip_phrases(rest, RAIFFEISEN_NOISE_PHRASES) or self.placeholder
    return _RaiffeisenRecord(
      block.date,
      description,
      to_float(anchor.group(1)),
      to_float(anchor.group(2)),
      block,
    )

  def post(
    self, balance: float, record: _RaiffeisenRecord, report: ParseReport
  ) -> Tuple[float, Transaction]:
    """Post one record on top of ``balance``; return the new balance and the transaction."""
    delta = round(record.balance - balance, 2)
    debit, credit, provenance = resolve_sign(abs(delta), delta, record.description)
    if delta and abs(record.printed_amount - abs(delta)) > _BALANCE_TOLERANCE:
      report.balance_mismatches += 1
    txn = Transaction(record.date, record.description, debit, credit, record.balance, provenance)
    return record.balance, txn

  def _parse_lines(self, lines, report):
    balance = self.opening_balance(lines)
    report.opening_balance_found = balance is not None
    if balance is None:
      logger.warning(f"[{self.tag}] No 'solde reporté' line found, cannot establish a balance")
      return []
    logger.info(f"[{self.tag}] Opening balance: {balance:.2f}")

    blocks = self.segment(lines, report)
    logger.info(f"[{self.tag}] {len(blocks)} transaction blocks found")
    records = [r for r in (self.extract(b, report) for b in blocks) if r]

    transactions = []
    for record in records:
      balance, txn = self.post(balance, record, report)
      transactions.append(txn)
    return transactions


# ---------------------------------------------------------------------------
# UBS
# ---------------------------------------------------------------------------

DASH = r"[-–—]"
_SWISS = rf"(?<![\d'’.,]){SWISS_AMOUNT}(?![\d.,])"
UBS_MOVEMENT_RE = re.compile(
  rf"(?<![\w'’.]){DASH}\s*(?P<credit>{_SWISS})|(?P<debit>{_SWISS})\s*{DASH}"
)
UBS_TRAILER_RE = re.compile(
  rf"{_SWISS}(?:\s*{DASH})?\s+(?:{DASH}\s*)?{_SWISS}\s+{DATE}\s*$"
)
UBS_BOILERPLATE = (r"\bCHF\b",)

# smallest undashed amount taken as a movement when no dash marks the side
FALLBACK_MIN_AMOUNT = 1.0
MAX_BLOCK_LINES = 10


@dataclass
class _UbsRecord:
  date: str
  description: str
  movement: Optional[float]
  balance: float
  provenance: Provenance
  block: TransactionBlock


@register_parser(BankFormat.UBS)
class UbsStatementParser(StatementParser):
  """Dash before the amount is a credit, dash after it a debit."""

  def segment(self, lines, report):
    return segment_lines(
      lines,
      self.classifier,
      report,
      max_lines=MAX_BLOCK_LINES,
      stop_pattern=UBS_TRAILER_RE,
      noise_closes=True,
    )

  def opening_balance(self, lines: Sequence[str]) -> Optional[float]:
    for line in lines:
      if "solde initial" in fold(line):
        amounts = find_amounts(line)
        if amounts:
          return to_float(amounts[-1].group(0))
    return None

  def extract(self, block: TransactionBlock, report: ParseReport) -> Optional[_UbsRecord]:
    text = DATE_RE.sub(_blank, block.text)

    credit = debit = 0.0
    marked = False
    for m in UBS_MOVEMENT_RE.finditer(text):
      marked = True
      if m.group("credit"):
        credit += to_float(m.group("credit"))
      else:
        debit += to_float(m.group("debit"))
    remaining = UBS_MOVEMENT_RE.sub(_blank, text)

    amounts = find_amounts(remaining)
    if not amounts:
      self._reject(report, block, "no_amount")
      return None
    balance_match = amounts[-1]
    consumed = [balance_match]

    movement: Optional[float] = None
    provenance = Provenance.DASH_MARKER
    if marked:
      movement = round(credit - debit, 2)
    else:
      for m in amounts[:-1]:
        if to_float(m.group(0)) > FALLBACK_MIN_AMOUNT:
          movement = -to_float(m.group(0))
          provenance = Provenance.DEFAULT_GUESS
          consumed.append(m)
          break

    for m in consumed:
      remaining = remaining[:m.start()] + _blank(m) + remaining[m.end():]
    description = _strip_phrases(remaining, UBS_BOILERPLATE) or self.placeholder
    return _UbsRecord(
      block.date, description, movement, to_float(balance_match.group(0)), provenance, block
    )

  def _parse_lines(self, lines, report):
    previous = self.opening_balance(lines)
    report.opening_balance_found = previous is not None

    blocks = self.segment(lines, report)
    logger.info(f"[{self.tag}] {len(blocks)} transaction blocks found")
    records = [r for r in (self.extract(b, report) for b in blocks) if r]

    transactions = []
    for record in records:
      if previous is not None:
        delta = round(record.balance - previous, 2)
        if not delta:
          self._reject(report, record.block, "unresolved")
          continue
        if record.movement is not None and abs(record.movement - delta) > _BALANCE_TOLERANCE:
          report.balance_mismatches += 1
          provenance = Provenance.BALANCE_DELTA
        elif record.provenance is Provenance.DASH_MARKER and record.movement is not None:
          provenance = Provenance.DASH_MARKER
        else:
          provenance = Provenance.BALANCE_DELTA
        movement = delta
      else:
        if not record.movement:
          self._reject(report, record.block, "unresolved")
          continue
        movement, provenance = record.movement, record.provenance

      debit = -movement if movement < 0 else None
      credit = movement if movement > 0 else None
      transactions.append(
        Transaction(record.date, record.description, debit, credit, record.balance, provenance)
      )
      previous = record.balance
    return transactions
