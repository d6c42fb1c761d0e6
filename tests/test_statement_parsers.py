import unittest

from abaconverter.models import BankFormat, ParseReport, Provenance, Transaction
from abaconverter.statement_parsers import (
  FALLBACK_MIN_AMOUNT,
  PARSERS,
  BcgeStatementParser,
  RaiffeisenStatementParser,
  UbsStatementParser,
  assemble,
  check_balance_chain,
  get_parser,
  parse_statement,
  resolve_sign,
)

BCGE_TEXT = "\n".join([
  "Banque Cantonale de Genève",
  "Relevé de compte",
  "Date Texte Débit Crédit Valeur Solde",
  "29.02.2024 Achat XYZ 21.49 1'178.51",
  "01.03.2024 PAYMENT ABC 56.05 1'234.56",
  "Page 1 / 1",
])

RAIFFEISEN_TEXT = "\n".join([
  "Banque Raiffeisen Genève",
  "Date Texte Débit Crédit Solde Valeur",
  "01.03.2024 Solde reporté 1'000.00",
  "05.03.2024 Paiement Swisscom",
  "50.00 950.00 05.03.2024",
  "06.03.2024 Virement reçu ACME SA 200.00 1'150.00 06.03.2024",
  "Page 1 / 2",
  "07.03.2024 Achat carte EUR 45,20 taux de change 1.0512 Détails supprimés 47.50 1'102.50 07.03.2024",
  "08.03.2024 10.00 1'092.50 08.03.2024",
  "09.03.2024 Frais bancaires",
])

UBS_TEXT = "\n".join([
  "UBS Switzerland AG",
  "Date Texte Débit Crédit Valeur Solde",
  "01.03.2024 Solde initial 600.00",
  "02.03.2024 Virement ACME SA",
  "- 200.00 800.00 02.03.2024",
  "03.03.2024 Paiement carte Coop 45.50 - 754.50 03.03.2024",
  "04.03.2024 Information",
])


class ResolveSignTest(unittest.TestCase):
  def test_balance_delta_decides(self):
    self.assertEqual(resolve_sign(10.0, -10.0, "Versement"), (10.0, None, Provenance.BALANCE_DELTA))
    self.assertEqual(resolve_sign(0.0, 25.0, "x"), (None, 25.0, Provenance.BALANCE_DELTA))

  def test_keyword_guess(self):
    self.assertEqual(resolve_sign(5.0, None, "Bonification client"), (None, 5.0, Provenance.KEYWORD_GUESS))
    self.assertEqual(resolve_sign(5.0, 0.0, "Virement reçu"), (None, 5.0, Provenance.KEYWORD_GUESS))

  def test_default_is_debit(self):
    self.assertEqual(resolve_sign(5.0, None, "Migros"), (5.0, None, Provenance.DEFAULT_GUESS))


class AssembleTest(unittest.TestCase):
  def test_both_sides_is_an_error(self):
    with self.assertRaises(ValueError):
      assemble([Transaction("01.03.2024", "x", 1.0, 2.0, 10.0)])

  def test_rounds_and_counts(self):
    report = ParseReport()
    result = assemble(
      [Transaction("01.03.2024", "x", 1.004, None, 10.0049, Provenance.DEFAULT_GUESS)], report
    )
    self.assertEqual(result[0].debit, 1.0)
    self.assertEqual(result[0].solde, 10.0)
    self.assertEqual(report.transactions, 1)
    self.assertEqual(report.guessed, 1)


class RegistryTest(unittest.TestCase):
  def test_every_format_has_a_parser(self):
    self.assertEqual(set(PARSERS), set(BankFormat))

  def test_get_parser(self):
    self.assertIsInstance(get_parser("BCGE"), BcgeStatementParser)
    self.assertIsInstance(get_parser(BankFormat.RAIFFEISEN), RaiffeisenStatementParser)
    self.assertIsInstance(get_parser("ubs"), UbsStatementParser)

  def test_unknown_format(self):
    with self.assertRaises(ValueError):
      get_parser("postfinance")


class BcgeParserTest(unittest.TestCase):
  def test_balance_delta_gives_credit(self):
    result = parse_statement(BCGE_TEXT, "bcge")
    self.assertEqual(len(result), 2)
    self.assertEqual(
      result[1], Transaction("01.03.2024", "PAYMENT ABC", None, 56.05, 1234.56, Provenance.BALANCE_DELTA)
    )

  def test_first_row_without_previous_balance_is_a_guess(self):
    first = parse_statement(BCGE_TEXT, "bcge")[0]
    self.assertEqual(first.description, "Achat XYZ")
    self.assertEqual(first.debit, 21.49)
    self.assertIsNone(first.credit)
    self.assertIs(first.provenance, Provenance.DEFAULT_GUESS)

  def test_balance_only_row_seeds_the_chain(self):
    text = "\n".join([
      "01.03.2024 Solde reporté 1'000.00",
      "02.03.2024 Virement salaire 1'500.00",
      "03.03.2024 Migros 45.30 1'454.70",
    ])
    report = ParseReport()
    result = BcgeStatementParser().parse(text, report)
    self.assertEqual([(t.debit, t.credit) for t in result], [(None, 500.0), (45.3, None)])
    self.assertEqual(report.rejected["zero_amount"], 1)
    self.assertEqual(check_balance_chain(result), [])

  def test_mismatch_is_reported(self):
    text = "\n".join([
      "03.03.2024 Migros 45.30 1'454.70",
      "04.03.2024 Coop 10.00 1'440.00",
    ])
    report = ParseReport()
    result = BcgeStatementParser().parse(text, report)
    self.assertEqual(result[1].debit, 10.0)
    self.assertEqual(report.balance_mismatches, 1)
    self.assertEqual(check_balance_chain(result), [1])

  def test_boilerplate_and_continuation(self):
    text = "\n".join([
      "04.03.2024 Migros 10.00 500.00",
      "05.03.2024 Virement CHF 250.00 750.00",
      "Donneur d'ordre: Jean Dupont",
      "/C/ CH9300762011623852957",
    ])
    result = BcgeStatementParser().parse(text)
    self.assertEqual(result[1].description, "Virement Jean Dupont CH9300762011623852957")
    self.assertIs(result[1].provenance, Provenance.BALANCE_DELTA)
    self.assertEqual(result[1].credit, 250.0)

  def test_rejected_blocks(self):
    text = "\n".join([
      "06.03.2024 X 5.00 745.00",
      "07.03.2024 Annulation",
    ])
    report = ParseReport()
    self.assertEqual(BcgeStatementParser().parse(text, report), [])
    self.assertEqual(report.rejected["short_description"], 1)
    self.assertEqual(report.rejected["no_amount"], 1)


class RaiffeisenParserTest(unittest.TestCase):
  def setUp(self):
    self.report = ParseReport()
    self.result = RaiffeisenStatementParser().parse(RAIFFEISEN_TEXT, self.report)

  def test_first_transaction(self):
    self.assertEqual(
      self.result[0],
      Transaction("05.03.2024", "Paiement Swisscom", 50.0, None, 950.0, Provenance.BALANCE_DELTA),
    )

  def test_credit_on_one_line(self):
    self.assertEqual(self.result[1].credit, 200.0)
    self.assertEqual(self.result[1].solde, 1150.0)
    self.assertEqual(self.result[1].description, "Virement reçu ACME SA")

  def test_noise_phrases_removed(self):
    self.assertEqual(self.result[2].description, "Achat carte")
    self.assertEqual(self.result[2].debit, 47.5)

  def test_placeholder_description(self):
    self.assertEqual(self.result[3].description, "(paiement / virement non décrit)")

  def test_block_without_anchor_is_absent(self):
    self.assertEqual(len(self.result), 4)
    self.assertEqual(self.report.rejected["no_anchor"], 1)

  def test_chain_holds(self):
    self.assertTrue(self.report.opening_balance_found)
    self.assertEqual(check_balance_chain(self.result), [])
    self.assertEqual(self.result[0].movement, round(950.0 - 1000.0, 2))
    self.assertEqual(self.report.balance_mismatches, 0)

  def test_opening_balance_spelling_variants(self):
    for opening in (
      "01.03.2024 SOLDE REPORTE 1'000.00",
      "01.03.2024 Solde  reporte 1'000.00",
      "01.03.2024 solde reporté 1 000.00",
      "01.03.2024 Soldereporté 1'000.00",
    ):
      text = RAIFFEISEN_TEXT.replace("01.03.2024 Solde reporté 1'000.00", opening)
      report = ParseReport()
      result = RaiffeisenStatementParser().parse(text, report)
      self.assertTrue(report.opening_balance_found, opening)
      self.assertEqual((result[0].debit, result[0].solde), (50.0, 950.0), opening)
      self.assertEqual(len(result), 4, opening)

  def test_no_opening_balance(self):
    text = RAIFFEISEN_TEXT.replace("01.03.2024 Solde reporté 1'000.00", "")
    report = ParseReport()
    self.assertEqual(RaiffeisenStatementParser().parse(text, report), [])
    self.assertFalse(report.opening_balance_found)


class UbsParserTest(unittest.TestCase):
  def test_dash_markers(self):
    report = ParseReport()
    result = UbsStatementParser().parse(UBS_TEXT, report)
    self.assertEqual(
      result,
      [
        Transaction("02.03.2024", "Virement ACME SA", None, 200.0, 800.0, Provenance.DASH_MARKER),
        Transaction("03.03.2024", "Paiement carte Coop", 45.5, None, 754.5, Provenance.DASH_MARKER),
      ],
    )
    self.assertTrue(report.opening_balance_found)
    self.assertEqual(report.rejected["no_amount"], 1)
    self.assertEqual(check_balance_chain(result), [])

  def test_without_opening_balance(self):
    text = UBS_TEXT.replace("01.03.2024 Solde initial 600.00", "")
    result = UbsStatementParser().parse(text)
    self.assertEqual(result[0].credit, 200.0)
    self.assertIs(result[0].provenance, Provenance.DASH_MARKER)

  def test_delta_overrides_disagreeing_dash(self):
    text = "\n".join([
      "01.03.2024 Solde initial 600.00",
      "02.03.2024 Virement - 150.00 800.00",
    ])
    report = ParseReport()
    result = UbsStatementParser().parse(text, report)
    self.assertEqual(result[0].credit, 200.0)
    self.assertIs(result[0].provenance, Provenance.BALANCE_DELTA)
    self.assertEqual(report.balance_mismatches, 1)

  def test_both_dash_forms_are_netted(self):
    result = UbsStatementParser().parse("02.03.2024 Compensation - 100.00 30.00 - 670.00")
    self.assertEqual(result[0].credit, 70.0)
    self.assertEqual(result[0].solde, 670.0)

  def test_fallback_amount_is_a_debit_guess(self):
    result = UbsStatementParser().parse("02.03.2024 Retrait Bancomat 300.00 500.00")
    self.assertEqual(result[0].debit, 300.0)
    self.assertTrue(result[0].is_guessed)

  def test_fallback_ignores_small_amounts(self):
    self.assertEqual(FALLBACK_MIN_AMOUNT, 1.0)
    report = ParseReport()
    result = UbsStatementParser().parse("02.03.2024 Frais 1.00 0.50 500.00", report)
    self.assertEqual(result, [])
    self.assertEqual(report.rejected["unresolved"], 1)

  def test_unresolved(self):
    report = ParseReport()
    self.assertEqual(UbsStatementParser().parse("02.03.2024 Note 500.00", report), [])
    self.assertEqual(report.rejected["unresolved"], 1)

  def test_block_line_cap(self):
    lines = ["02.03.2024 Virement"] + [f"detail {i}" for i in range(12)]
    report = ParseReport()
    UbsStatementParser().parse("\n".join(lines), report)
    self.assertEqual(report.orphan_lines, 3)


class CommonBehaviourTest(unittest.TestCase):
  SAMPLES = {
    BankFormat.BCGE: BCGE_TEXT,
    BankFormat.RAIFFEISEN: RAIFFEISEN_TEXT,
    BankFormat.UBS: UBS_TEXT,
  }

  def test_never_both_sides(self):
    for fmt, text in self.SAMPLES.items():
      for txn in parse_statement(text, fmt):
        self.assertFalse(txn.debit is not None and txn.credit is not None, fmt)
        self.assertTrue(txn.debit is not None or txn.credit is not None, fmt)

  def test_idempotent(self):
    for fmt, text in self.SAMPLES.items():
      self.assertEqual(parse_statement(text, fmt), parse_statement(text, fmt), fmt)

  def test_dated_block_without_amount_is_absent(self):
    for fmt in BankFormat:
      self.assertEqual(parse_statement("10.03.2024 Texte sans montant", fmt), [], fmt)

  def test_noise_never_in_descriptions(self):
    for fmt, text in self.SAMPLES.items():
      for txn in parse_statement(text, fmt):
        self.assertNotIn("Page", txn.description)
        self.assertNotIn("Solde", txn.description)

  def test_empty_text(self):
    for fmt in BankFormat:
      self.assertEqual(parse_statement("", fmt), [])


if __name__ == '__main__':
  unittest.main()
