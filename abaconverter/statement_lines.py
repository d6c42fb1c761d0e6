"""Line classification and record segmentation for extracted statement text.

PDF text extraction repeats letterheads, page markers and column headers on
every page.  Each line is classified as the start of a record (leading
``dd.mm.yyyy`` date), noise, or a continuation of the open record; the
segmenter then groups the lines into one block per transaction.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .amounts import LEADING_DATE_RE
from .models import BankFormat, ParseReport

logger = logging.getLogger(__name__)

__all__ = [
  "LineKind",
  "NoiseProfile",
  "NOISE_PROFILES",
  "LineClassifier",
  "TransactionBlock",
  "fold",
  "segment_lines",
]


class LineKind(Enum):
  RECORD_START = "record_start"
  NOISE = "noise"
  CONTINUATION = "continuation"


def fold(text: str) -> str:
  """Lower-case, strip accents and collapse whitespace."""
  decomposed = unicodedata.normalize("NFKD", text)
  stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
  return re.sub(r"\s+", " ", stripped).strip().lower()


# Signatures shared by every layout; matched against fold(line)
COMMON_NOISE = (
  r"^page\s*\d+(\s*(/|de|sur|of)\s*\d+)?$",
  r"^\d+\s*/\s*\d+$",
  r"^date\b.*\bsolde\b",
  r"^(a reporter|report|total)\b",
  r"^(releve|extrait) de compte\b",
)


@dataclass(frozen=True)
class NoiseProfile:
  """Boilerplate signatures of one statement layout."""

  name: str
  patterns: Sequence[str]

  def compiled(self) -> List[re.Pattern]:
    return [re.compile(p) for p in (*COMMON_NOISE, *self.patterns)]


NOISE_PROFILES = {
  BankFormat.BCGE: NoiseProfile(
    "bcge",
    (
      r"banque cantonale de geneve",
      r"\bbcge\.ch\b",
      r"quai de l'ile",
      r"^case postale\b",
      r"^(tel|t)\.?\s*\+?\s*(41|0\d{2})\b",
      r"^solde\b",
    ),
  ),
  BankFormat.RAIFFEISEN: NoiseProfile(
    "raiffeisen",
    (
      r"^(banque )?raiffeisen\b",
      r"\braiffeisen\.ch\b",
      r"solde\s*reporte",
      r"^solde\b",
      r"^chiffre d'affaires\b",
    ),
  ),
  BankFormat.UBS: NoiseProfile(
    "ubs",
    (
      r"^ubs\b",
      r"\bubs switzerland ag\b",
      r"\bubs\.com\b",
      r"\bsolde (initial|final)\b",
      r"^(total des )?mouvements\b",
      r"^(case postale|postfach)\b",
    ),
  ),
}


class LineClassifier:
  """Classify trimmed statement lines for one layout."""

  def __init__(self, profile: NoiseProfile):
    self.profile = profile
    self._noise = profile.compiled()

  def is_noise(self, line: str) -> bool:
    folded = fold(line)
    if not folded:
      return True
    return any(p.search(folded) for p in self._noise)

  def classify(self, line: str) -> LineKind:
    line = line.strip()
    if self.is_noise(line):
      return LineKind.NOISE
    if LEADING_DATE_RE.match(line):
      return LineKind.RECORD_START
    return LineKind.CONTINUATION


@dataclass
class TransactionBlock:
  """Raw lines of one record; the first one carries the leading date."""

  lines: List[str] = field(default_factory=list)

  @property
  def first_line(self) -> str:
    return self.lines[0] if self.lines else ""

  @property
  def continuation(self) -> List[str]:
    return self.lines[1:]

  @property
  def date(self) -> Optional[str]:
    m = LEADING_DATE_RE.match(self.first_line)
    return m.group(1) if m else None

  @property
  def text(self) -> str:
    return " ".join(self.lines)


def segment_lines(
  lines: Iterable[str],
  classifier: LineClassifier,
  report: Optional[ParseReport] = None,
  *,
  max_lines: Optional[int] = None,
  stop_pattern: Optional[re.Pattern] = None,
  noise_closes: bool = False,
) -> List[TransactionBlock]:
  """Group classified lines into transaction blocks in document order.

  Noise is always dropped; with ``noise_closes`` it also ends the open
  block.  A continuation line matching ``stop_pattern`` is kept and then
  ends its block, and a block reaching ``max_lines`` lines is closed.
  Continuation lines with no open block are dropped as orphans.
  """
  report = report if report is not None else ParseReport()
  blocks: List[TransactionBlock] = []
  current: Optional[TransactionBlock] = None

  for raw in lines:
    line = raw.strip()
    report.lines_total += 1
    kind = classifier.classify(line)

    if kind is LineKind.NOISE:
      report.noise_lines += 1
      if noise_closes and current is not None:
        blocks.append(current)
        current = None
      continue

    if kind is LineKind.RECORD_START:
      report.record_lines += 1
      if current is not None:
        blocks.append(current)
      current = TransactionBlock([line])
    else:
      report.continuation_lines += 1
      if current is None:
        report.orphan_lines += 1
        continue
      current.lines.append(line)
      if stop_pattern is not None and stop_pattern.search(line):
        blocks.append(current)
        current = None
        continue

    if max_lines and len(current.lines) >= max_lines:
      blocks.append(current)
      current = None

  if current is not None:
    blocks.append(current)

  report.blocks += len(blocks)
  logger.debug(f"Segmented {report.lines_total} lines into {len(blocks)} blocks")
  return blocks
