"""
Тесты для модуля валидации.

Проверка санитизации имён и разбора аргументов админских команд.
"""

import pytest

from config.grades import GRADE_ROWS, GRADES, format_grade_level, is_valid_grade
from core.validators import (
    first_argument,
    get_display_name,
    parse_telegram_id,
    sanitize_username,
    truncate_text,
    validate_telegram_id,
)


class TestTruncateText:
    """Тесты обрезки текста."""

    def test_short_text_unchanged(self):
        assert truncate_text("Hello", 10) == "Hello"

    def test_long_text_truncated(self):
        result = truncate_text("a" * 20, 10)
        assert result == "a" * 7 + "..."
        assert len(result) == 10

    def test_empty(self):
        assert truncate_text("", 10) == ""
        assert truncate_text(None, 10) == ""


class TestSanitizeUsername:
    """Тесты санитизации username."""

    def test_valid_username(self):
        assert sanitize_username("john_doe123") == "john_doe123"

    def test_strips_at(self):
        assert sanitize_username("@john") == "john"

    def test_invalid_chars(self):
        assert sanitize_username("john<script>") is None

    def test_empty(self):
        assert sanitize_username("") is None
        assert sanitize_username(None) is None


class TestTelegramId:
    """Тесты Telegram ID."""

    def test_valid(self):
        assert validate_telegram_id(123456789)

    def test_zero_and_negative(self):
        assert not validate_telegram_id(0)
        assert not validate_telegram_id(-5)

    def test_bool_rejected(self):
        assert not validate_telegram_id(True)

    @pytest.mark.parametrize("value,expected", [
        ("123", 123),
        (" 42 ", 42),
        ("0", None),
        ("-1", None),
        ("abc", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, value, expected):
        assert parse_telegram_id(value) == expected


class TestFirstArgument:
    """Тесты разбора аргументов команд."""

    def test_single(self):
        assert first_argument("65a1b2c3d4e5f60718293a4b") == "65a1b2c3d4e5f60718293a4b"

    def test_multiple(self):
        assert first_argument("123 spam links") == "123"

    def test_empty(self):
        assert first_argument(None) is None
        assert first_argument("   ") is None


class TestDisplayName:
    """Тесты отображаемого имени."""

    def test_username_first(self):
        assert get_display_name("john", "John") == "john"

    def test_first_name_fallback(self):
        assert get_display_name(None, "  John  ") == "John"

    def test_invalid_username_falls_back(self):
        assert get_display_name("bad name!", "John") == "John"

    def test_default(self):
        assert get_display_name(None, None) == "Anonymous"
        assert get_display_name(None, "", default="Unknown") == "Unknown"

    def test_long_first_name_truncated(self):
        assert len(get_display_name(None, "x" * 300)) == 100


class TestGrades:
    """Тесты уровней обучения."""

    def test_rows_cover_all_grades(self):
        codes = [code for row in GRADE_ROWS for code in row]
        assert sorted(codes) == sorted(GRADES)

    def test_is_valid_grade(self):
        assert is_valid_grade("grade9")
        assert is_valid_grade("university")
        assert not is_valid_grade("grade99")

    def test_format(self):
        assert format_grade_level("grade10") == "Grade 10"
        assert format_grade_level("unknown") == "unknown"
        assert format_grade_level(None) == ""
