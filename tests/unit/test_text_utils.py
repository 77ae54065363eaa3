"""
Unit tests for name and header normalization.

Run: pytest tests/unit/test_text_utils.py -v
"""

from utils.text_utils import normalize_name, clean_header, cell_to_text, clean_display_name


class TestNormalizeName:
    """Tests for normalize_name()"""

    def test_trims_collapses_and_lowercases(self):
        assert normalize_name("  Milk   3% ") == "milk 3%"

    def test_hebrew_whitespace(self):
        assert normalize_name("חלב  תנובה") == "חלב תנובה"

    def test_none_is_empty(self):
        assert normalize_name(None) == ""


class TestCleanHeader:
    """Tests for clean_header()"""

    def test_strips_punctuation(self):
        assert clean_header('מק"ט') == "מק ט"

    def test_underscores_become_spaces(self):
        assert clean_header("Cost_Price (NIS)") == "cost price nis"

    def test_none_is_empty(self):
        assert clean_header(None) == ""


class TestCellToText:
    """Tests for cell_to_text()"""

    def test_integral_float_loses_suffix(self):
        assert cell_to_text(7290000000017.0) == "7290000000017"

    def test_fractional_float_kept(self):
        assert cell_to_text(12.5) == "12.5"

    def test_strings_are_trimmed(self):
        assert cell_to_text("  Acme ") == "Acme"

    def test_nan_is_empty(self):
        assert cell_to_text(float("nan")) == ""


class TestCleanDisplayName:
    """Tests for clean_display_name()"""

    def test_keeps_case(self):
        assert clean_display_name("  Tnuva   Ltd ") == "Tnuva Ltd"

    def test_blank_is_none(self):
        assert clean_display_name("   ") is None
        assert clean_display_name(None) is None

    def test_truncates(self):
        assert clean_display_name("x" * 300, max_length=10) == "x" * 10
