import unittest

from ai_localize.models import TranslationTask
from ai_localize.translation_validator import (
    check_placeholder_parity,
    check_whitespace_edges,
    extract_format_specifiers,
    validate_translations,
)


class TestFormatSpecifiers(unittest.TestCase):

    def test_extract_format_specifiers(self):
        self.assertEqual(extract_format_specifiers("%@ has %lld items"), ["%@", "%lld"])
        self.assertEqual(extract_format_specifiers("%1$@ to %2$@"), ["%1$@", "%2$@"])
        self.assertEqual(extract_format_specifiers("Total: %.2f"), ["%.2f"])

    def test_escaped_percent_is_not_a_specifier(self):
        self.assertEqual(extract_format_specifiers("100%% done"), [])
        self.assertEqual(extract_format_specifiers("%d%%"), ["%d"])

    def test_plain_percent_sign(self):
        self.assertEqual(extract_format_specifiers("100% sure"), [])

    def test_placeholder_parity(self):
        self.assertTrue(check_placeholder_parity("%@ items remaining", "%@ elementos restantes"))
        self.assertTrue(check_placeholder_parity("%1$@ to %2$@", "%2$@ desde %1$@"))
        self.assertFalse(check_placeholder_parity("%@ items", "elementos"))
        self.assertFalse(check_placeholder_parity("%lld items", "%d elementos"))


class TestWhitespaceEdges(unittest.TestCase):

    def test_matching_edges(self):
        self.assertTrue(check_whitespace_edges("  Multiple  spaces  ", "  Múltiples  espacios  "))
        self.assertTrue(check_whitespace_edges("Line\n", "Línea\n"))

    def test_changed_edges(self):
        self.assertFalse(check_whitespace_edges("  Indented", "Indented"))
        self.assertFalse(check_whitespace_edges("Trailing ", "Final"))


class TestValidateTranslations(unittest.TestCase):

    def test_reports_each_problem(self):
        tasks = [
            TranslationTask("ok", "%@ items", "es"),
            TranslationTask("specifier", "%@ items", "es"),
            TranslationTask("space", " Padded", "es"),
            TranslationTask("empty", "Hello", "fr"),
            TranslationTask("missing", "Absent", "fr"),
        ]
        results = {
            "ok": {"es": "%@ elementos"},
            "specifier": {"es": "elementos"},
            "space": {"es": "Relleno"},
            "empty": {"fr": "  "},
        }

        with self.assertLogs('ai_localize.translation_validator', level='WARNING') as logs:
            problems = validate_translations(tasks, results)

        self.assertEqual(len(problems), 3)
        self.assertIn("'specifier'", problems[0])
        self.assertIn("'space'", problems[1])
        self.assertIn("Empty translation for key 'empty'", problems[2])
        self.assertEqual(len(logs.records), 3)

    def test_no_problems(self):
        tasks = [TranslationTask("Hello", "Hello", "es")]
        self.assertEqual(validate_translations(tasks, {"Hello": {"es": "Hola"}}), [])


if __name__ == '__main__':
    unittest.main()
