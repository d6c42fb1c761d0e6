"""Plain-text extraction from statement PDFs.

Two layouts are offered:

* ``rows`` clusters PyMuPDF words sharing a baseline into physical rows, so
  one printed statement line becomes one text line.
* ``flat`` joins the pdfplumber words of a page with single spaces and the
  pages with newlines.
"""

from __future__ import annotations

import logging
from itertools import groupby
from typing import Iterable, List, Sequence

import fitz  # PyMuPDF
import pdfplumber

logger = logging.getLogger(__name__)

LAYOUTS = ("rows", "flat")
DEFAULT_Y_TOLERANCE = 1.5


def cluster_rows(words: Iterable[Sequence], y_tol: float = DEFAULT_Y_TOLERANCE) -> List[str]:
  """Join ``(x0, y0, x1, y1, text, ...)`` word boxes of one page into rows.

  Words whose top edge falls in the same ``y_tol`` band form one row, read
  left to right.  Statement baselines can be as close as ~2 units, so the
  band must stay narrow.
  """
  if y_tol <= 0:
    raise ValueError(f"y tolerance must be positive, got {y_tol}")

  def band(word) -> int:
    return int(word[1] // y_tol)

  rows = []
  for _, group in groupby(sorted(words, key=lambda w: (band(w), w[0])), key=band):
    text = " ".join(str(w[4]) for w in group).strip()
    if text:
      rows.append(text)
  return rows


def extract_rows_words(pdf_path: str, y_tol: float = DEFAULT_Y_TOLERANCE) -> List[str]:
  rows: List[str] = []
  with fitz.open(pdf_path) as doc:
    for page in doc:
      rows.extend(cluster_rows(page.get_text("words"), y_tol))
  logger.info(f"Word-bucket clustering produced {len(rows)} rows (y tolerance {y_tol})")
  return rows


def extract_flat_text(pdf_path: str) -> str:
  pages = []
  with pdfplumber.open(pdf_path) as pdf:
    for page in pdf.pages:
      words = page.extract_words() or []
      pages.append(" ".join(w["text"] for w in words))
  logger.info(f"Extracted {len(pages)} pages of flat text")
  return "\n".join(pages)


def extract_statement_text(
  pdf_path: str, layout: str = "rows", y_tol: float = DEFAULT_Y_TOLERANCE
) -> str:
  """Return the text of a statement PDF, one line per newline."""
  if layout == "rows":
    return "\n".join(extract_rows_words(pdf_path, y_tol))
  if layout == "flat":
    return extract_flat_text(pdf_path)
  raise ValueError(f"Unknown text layout {layout!r} (expected one of: {', '.join(LAYOUTS)})")
