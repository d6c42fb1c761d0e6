"""Swiss-formatted amount parsing shared by the statement parsers.

Statements print amounts as ``1'627.10``, ``1 234,56`` or ``56.05``; these
helpers turn such tokens into floats rounded to two decimals.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Union

# 1-3 digits grouped by apostrophes, or a bare digit run, then two decimals
SWISS_AMOUNT = r"(?:\d{1,3}(?:['’]\d{3})+|\d+)\.\d{2}"
SWISS_AMOUNT_RE = re.compile(rf"(?<![\d'’.,]){SWISS_AMOUNT}(?![\d.,])")

# Same, but thousands may also be grouped with (no-break) spaces
LOOSE_AMOUNT = r"(?:\d{1,3}(?:['’ \u00a0\u202f]\d{3})+|\d+)\.\d{2}"
LOOSE_AMOUNT_RE = re.compile(rf"(?<![\d'’.,]){LOOSE_AMOUNT}(?![\d.,])")

DATE = r"\d{2}\.\d{2}\.\d{4}"
DATE_RE = re.compile(DATE)
LEADING_DATE_RE = re.compile(rf"^\s*({DATE})")

_SEPARATORS_RE = re.compile(r"['’\s\u00a0\u202f]")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

Number = Union[str, float, int, None]


def _normalize(text: str) -> Optional[str]:
  text = _SEPARATORS_RE.sub('', text).replace(',', '.')
  text = _NON_NUMERIC_RE.sub('', text)
  negative = text.startswith('-')
  text = text.replace('-', '')
  if text.count('.') > 1:
    # only the last dot is decimal, the others group thousands
    head, _, tail = text.rpartition('.')
    text = head.replace('.', '') + '.' + tail
  if not any(c.isdigit() for c in text):
    return None
  return ('-' if negative else '') + text


def parse_amount(value: Number) -> Optional[float]:
  """Parse a printed amount, returning ``None`` when nothing numeric is present."""
  if value is None:
    return None
  if isinstance(value, (int, float)):
    if isinstance(value, float) and math.isnan(value):
      return None
    return round(float(value), 2)
  text = _normalize(str(value))
  if text is None:
    return None
  try:
    return round(float(text), 2)
  except ValueError:
    return None


def to_float(value: Number) -> float:
  """Parse a printed amount, returning ``0.0`` for empty or malformed input.

  >>> to_float("1'627.10")
  1627.1
  >>> to_float("56,05")
  56.05
  """
  amount = parse_amount(value)
  return 0.0 if amount is None else amount


def round2(value: float) -> float:
  """Round half away from zero to cents."""
  return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def find_amounts(text: str, loose: bool = False) -> List[re.Match]:
  """Return the amount matches of ``text`` in reading order."""
  pattern = LOOSE_AMOUNT_RE if loose else SWISS_AMOUNT_RE
  return list(pattern.finditer(text))
