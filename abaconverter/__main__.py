import argparse
import logging
import os
import sys

from .addresses import (
  customers_to_xml,
  suppliers_from_xml,
  suppliers_to_xml,
  write_suppliers_excel,
  write_xml,
)
from .camt import process_camt_files, write_camt_excel
from .config import load_config
from .converter import BankStatementConverter, summarize
from .excel import read_sheet
from .invoices import convert_invoices, load_invoices, write_invoice_xml
from .ledger import load_ledger, summarize_ledger, transform_ledger, write_ledger_excel
from .models import BankFormat
from .pdf_text import LAYOUTS

logger = logging.getLogger("abaconverter")


def _output(args, cfg, source, default_name):
  if args.output:
    return args.output
  folder = cfg.get("output_dir") or os.path.dirname(os.path.abspath(source))
  return os.path.join(folder, default_name)


def run_statement(args, cfg):
  layout = args.layout or cfg["statement"]["layout"]
  y_tol = args.y_tolerance or cfg["statement"]["y_tolerance"]
  converter = BankStatementConverter(args.bank, layout=layout, y_tol=y_tol)
  transactions = converter.convert(args.pdf)
  out_path = args.output or converter.default_output_path(args.pdf, cfg.get("output_dir"))
  converter.write_excel(transactions, out_path)
  totals = summarize(transactions)
  print(
    f"{totals['transactions']} transactions, debit {totals['total_debit']:.2f}, "
    f"credit {totals['total_credit']:.2f} ➜ {out_path}"
  )
  if converter.last_report is not None:
    logger.info(converter.last_report.summary())


def run_camt(args, cfg):
  rows = process_camt_files(args.xml)
  out_path = _output(args, cfg, args.xml[0], "Paiements.xlsx")
  write_camt_excel(rows, out_path)
  print(f"{len(args.xml)} file(s), {len(rows)} rows ➜ {out_path}")


def run_ledger(args, cfg):
  entries = transform_ledger(load_ledger(args.xlsx))
  out_path = _output(args, cfg, args.xlsx, "F11_Ecritures.xlsx")
  write_ledger_excel(entries, out_path)
  summary = summarize_ledger(entries)
  print(
    f"{summary.total_transactions} entries: receipts {summary.receipts.count} "
    f"({summary.receipts.amount:.2f}), disbursements {summary.disbursements.count} "
    f"({summary.disbursements.amount:.2f}) ➜ {out_path}"
  )


def run_invoices(args, cfg):
  export = convert_invoices(load_invoices(args.xlsx))
  out_path = _output(args, cfg, args.xlsx, "AbaConnect_Export.xml")
  write_invoice_xml(export, out_path)
  print(f"{export.total_invoices} invoices, total {export.total_amount:.2f} ➜ {out_path}")


def run_suppliers(args, cfg):
  mode = args.mode or cfg["suppliers"]["mode"]
  start = args.start_number if args.start_number is not None else cfg["suppliers"]["start_number"]
  xml = suppliers_to_xml(read_sheet(args.xlsx, ["Nom"]), mode=mode, start_number=start)
  out_path = write_xml(xml, _output(args, cfg, args.xlsx, "Adresses.xml"))
  print(f"Suppliers ➜ {out_path}")


def run_customers(args, cfg):
  mode = args.mode or cfg["customers"]["mode"]
  start = args.start_number if args.start_number is not None else cfg["customers"]["start_number"]
  xml = customers_to_xml(read_sheet(args.xlsx, ["Nom"]), mode=mode, start_number=start)
  out_path = write_xml(xml, _output(args, cfg, args.xlsx, "Adresses.xml"))
  print(f"Customers ➜ {out_path}")


def run_suppliers_to_excel(args, cfg):
  with open(args.xml, "rb") as fh:
    df = suppliers_from_xml(fh.read())
  out_path = write_suppliers_excel(df, _output(args, cfg, args.xml, "Adresses_Fournisseurs_output.xlsx"))
  print(f"{len(df)} suppliers ➜ {out_path}")


def build_parser():
  parser = argparse.ArgumentParser(
    prog="abaconverter", description="Convert bank and accounting documents for Abacus"
  )
  parser.add_argument("--config", help="JSON file overriding the defaults")
  parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
  sub = parser.add_subparsers(dest="command", required=True)

  p = sub.add_parser("statement", help="Bank statement PDF to Excel")
  p.add_argument("pdf", help="Statement PDF")
  p.add_argument("--bank", required=True, choices=[b.value for b in BankFormat])
  p.add_argument("--layout", choices=LAYOUTS, help="Text extraction layout")
  p.add_argument("--y-tolerance", type=float, help="Row band height for the rows layout")
  p.add_argument("--output", help="Output .xlsx (default <name>_Converti.xlsx)")
  p.set_defaults(func=run_statement)

  p = sub.add_parser("camt", help="CAMT.054 XML to Excel")
  p.add_argument("xml", nargs="+", help="CAMT.054 files")
  p.add_argument("--output", help="Output .xlsx")
  p.set_defaults(func=run_camt)

  p = sub.add_parser("ledger", help="Ledger Excel to F11 entries")
  p.add_argument("xlsx", help="Ledger workbook")
  p.add_argument("--output", help="Output .xlsx")
  p.set_defaults(func=run_ledger)

  p = sub.add_parser("invoices", help="Invoice Excel to AbaConnect DEBI XML")
  p.add_argument("xlsx", help="Invoice workbook")
  p.add_argument("--output", help="Output .xml")
  p.set_defaults(func=run_invoices)

  for name, func, help_text in (
    ("suppliers", run_suppliers, "Supplier addresses Excel to KRED XML"),
    ("customers", run_customers, "Customer addresses Excel to DEBI XML"),
  ):
    p = sub.add_parser(name, help=help_text)
    p.add_argument("xlsx", help="Address workbook")
    p.add_argument("--mode", choices=["INSERT", "SAVE", "UPDATE"])
    p.add_argument("--start-number", type=int)
    p.add_argument("--output", help="Output .xml")
    p.set_defaults(func=func)

  p = sub.add_parser("suppliers-to-excel", help="KRED supplier XML to Excel")
  p.add_argument("xml", help="Supplier XML")
  p.add_argument("--output", help="Output .xlsx")
  p.set_defaults(func=run_suppliers_to_excel)
  return parser


def main(argv=None):
  parser = build_parser()
  args = parser.parse_args(argv)
  try:
    cfg = load_config(args.config)
  except ValueError as e:
    parser.error(str(e))
  level = logging.DEBUG if args.verbose else getattr(logging, str(cfg["log_level"]).upper(), logging.INFO)
  logging.basicConfig(level=level, format="%(levelname)s | %(message)s")

  try:
    args.func(args, cfg)
  except (ValueError, OSError) as e:
    logger.error(str(e))
    return 1
  return 0


if __name__ == '__main__':
  sys.exit(main())
