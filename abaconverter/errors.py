"""Exceptions raised by the converters."""

from typing import Iterable


class NoTransactionsFound(ValueError):
  """Raised when a statement yields no transaction at all."""

  def __init__(self, source: str = ""):
    where = f" in {source}" if source else ""
    super().__init__(f"Aucune transaction trouvée dans le PDF{where}")
    self.source = source


class MissingColumnsError(ValueError):
  """Raised when an input sheet lacks required headers."""

  def __init__(self, missing: Iterable[str]):
    self.missing = list(missing)
    super().__init__(f"Colonnes manquantes : {', '.join(self.missing)}")


class CamtParseError(ValueError):
  """Raised when a CAMT file is not well-formed XML."""
