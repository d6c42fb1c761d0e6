"""Excel helpers shared by the exporters."""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Sequence

import pandas as pd
from openpyxl.utils import get_column_letter

from .errors import MissingColumnsError

logger = logging.getLogger(__name__)


def fit_widths(df: pd.DataFrame, cap: int = 50) -> List[int]:
  """Width of each column: longest header or cell plus 2, capped."""
  widths = []
  for col in df.columns:
    longest = max([len(str(col))] + [len(str(v)) for v in df[col] if not _is_blank(v)])
    widths.append(min(longest + 2, cap))
  return widths


def _is_blank(value) -> bool:
  if value is None:
    return True
  try:
    return bool(pd.isna(value))
  except (TypeError, ValueError):
    return False


def write_sheet(
  df: pd.DataFrame,
  path: str,
  sheet_name: str,
  widths: Optional[Sequence[int]] = None,
) -> str:
  """Write ``df`` to a single-sheet workbook and return the path."""
  folder = os.path.dirname(path)
  if folder:
    os.makedirs(folder, exist_ok=True)
  with pd.ExcelWriter(path, engine="openpyxl") as writer:
    df.to_excel(writer, sheet_name=sheet_name, index=False)
    if widths:
      worksheet = writer.sheets[sheet_name]
      for idx, width in enumerate(widths, start=1):
        worksheet.column_dimensions[get_column_letter(idx)].width = width
  logger.info(f"Excel saved ➜ {path}")
  return path


def read_sheet(path: str, required: Iterable[str] = ()) -> pd.DataFrame:
  """Read the first sheet of ``path``; raise if a required header is missing."""
  df = pd.read_excel(path, sheet_name=0, dtype=object)
  df.columns = [str(c).strip() for c in df.columns]
  missing = [h for h in required if h not in df.columns]
  if missing:
    raise MissingColumnsError(missing)
  logger.info(f"Read {len(df)} rows from {path}")
  return df
