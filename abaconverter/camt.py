"""CAMT.054 debit/credit notifications to a ``Paiements`` spreadsheet."""

from __future__ import annotations

import logging
import os
from dataclasses import astuple, dataclass
from typing import Iterable, List, Optional
from xml.etree import ElementTree as ET

import pandas as pd

from .errors import CamtParseError
from .excel import fit_widths, write_sheet

logger = logging.getLogger(__name__)

CAMT_HEADERS = [
  "Montant",
  "Devise",
  "Crédit/Débit",
  "Date de comptabilisation",
  "Date de valeur",
  "Nom du débiteur",
  "IBAN du débiteur",
  "IBAN du créancier",
  "Référence propriétaire",
  "EndToEndId",
  "InstructionId",
  "Banque du débiteur",
  "Informations supplémentaires",
]
CAMT_SHEET = "Paiements"


@dataclass
class CamtEntry:
  montant: str = ""
  devise: str = ""
  credit_debit: str = ""
  date_comptabilisation: str = ""
  date_valeur: str = ""
  nom_debiteur: str = ""
  iban_debiteur: str = ""
  iban_creancier: str = ""
  reference_proprietaire: str = ""
  end_to_end_id: str = ""
  instruction_id: str = ""
  banque_debiteur: str = ""
  informations_supplementaires: str = ""


def _path(path: str) -> str:
  # any namespace, so camt.054 versions other than .04 read the same way
  return "/".join(f"{{*}}{part}" for part in path.split("/"))


def _text(elem: ET.Element, path: str) -> str:
  return (elem.findtext(_path(path), default="") or "").strip()


def parse_camt(xml_text: str, source: Optional[str] = None) -> List[CamtEntry]:
  """One row per transaction detail, or per entry when it has none."""
  try:
    root = ET.fromstring(xml_text)
  except ET.ParseError as e:
    where = f" in {source}" if source else ""
    raise CamtParseError(f"Erreur de parsing XML{where}: {e}") from e

  rows: List[CamtEntry] = []
  for entry in root.findall(".//{*}Ntry"):
    amt = entry.find("{*}Amt")
    base = dict(
      montant=(amt.text or "").strip() if amt is not None else "",
      devise=amt.get("Ccy", "") if amt is not None else "",
      credit_debit=_text(entry, "CdtDbtInd"),
      date_comptabilisation=_text(entry, "BookgDt/Dt"),
      date_valeur=_text(entry, "ValDt/Dt"),
      informations_supplementaires=_text(entry, "AddtlNtryInf"),
    )
    details = entry.findall(".//{*}TxDtls")
    if not details:
      rows.append(CamtEntry(**base))
      continue
    for tx in details:
      rows.append(
        CamtEntry(
          **base,
          nom_debiteur=_text(tx, "RltdPties/Dbtr/Nm"),
          iban_debiteur=_text(tx, "RltdPties/DbtrAcct/Id/IBAN"),
          iban_creancier=_text(tx, "RltdPties/CdtrAcct/Id/IBAN"),
          reference_proprietaire=_text(tx, "Refs/Prtry/Ref"),
          end_to_end_id=_text(tx, "Refs/EndToEndId"),
          instruction_id=_text(tx, "Refs/InstrId"),
          banque_debiteur=_text(tx, "RltdAgts/DbtrAgt/FinInstnId/Nm"),
        )
      )
  logger.info(f"CAMT: {len(rows)} payment rows")
  return rows


def process_camt_files(paths: Iterable[str]) -> List[CamtEntry]:
  """Parse several CAMT files in order; the first unreadable one aborts."""
  paths = list(paths)
  if not paths:
    raise ValueError("Aucun fichier à traiter")
  rows: List[CamtEntry] = []
  for path in paths:
    name = os.path.basename(path)
    with open(path, "rb") as fh:
      data = fh.read()
    try:
      rows.extend(parse_camt(data))
    except CamtParseError as e:
      raise CamtParseError(f"Erreur dans le fichier {name}: {e}") from e
  return rows


def camt_dataframe(rows: List[CamtEntry]) -> pd.DataFrame:
  return pd.DataFrame([astuple(r) for r in rows], columns=CAMT_HEADERS)


def write_camt_excel(rows: List[CamtEntry], path: str = "Paiements.xlsx") -> str:
  df = camt_dataframe(rows)
  return write_sheet(df, path, CAMT_SHEET, fit_widths(df))
