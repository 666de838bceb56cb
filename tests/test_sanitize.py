"""Tests for directory name sanitization."""

import pytest

from soroban_sandbox_mcp.sandbox.sanitize import (
    DEFAULT_NAME,
    MAX_NAME_LENGTH,
    WINDOWS_RESERVED_NAMES,
    is_reserved_name,
    sanitize_name,
)


def assert_safe(name: str) -> None:
    """Check the properties every sanitized name must have."""
    assert name
    assert "/" not in name
    assert "\\" not in name
    assert ".." not in name
    assert not is_reserved_name(name)
    assert len(name) <= MAX_NAME_LENGTH


class TestPathTraversal:
    """Tests for traversal and separator handling."""

    def test_strips_parent_references(self):
        """Test that leading ../ is removed."""
        assert sanitize_name("../malicious") == "malicious"
        assert sanitize_name("../../../root") == "root"

    def test_nested_path_becomes_single_segment(self):
        """Test that inner separators are replaced."""
        assert sanitize_name("../../etc/passwd") == "etc_passwd"

    def test_windows_separators(self):
        """Test backslash traversal."""
        assert sanitize_name("..\\..\\windows") == "windows"

    def test_dangerous_characters_removed(self):
        """Test that characters forbidden on Windows do not survive."""
        dangerous = '<>:"/\\|?*'
        result = sanitize_name(f"test{dangerous}name")

        for char in dangerous:
            assert char not in result
        assert "test" in result
        assert "name" in result

    def test_dots_rebuilt_by_removal_are_collapsed(self):
        """Test that removing a character cannot create a new '..'."""
        result = sanitize_name("a.#.b")
        assert ".." not in result

    def test_only_dots(self):
        """Test that a bare traversal falls back."""
        assert sanitize_name("..") == DEFAULT_NAME
        assert sanitize_name("....//....") == DEFAULT_NAME


class TestReservedNames:
    """Tests for Windows reserved device names."""

    @pytest.mark.parametrize("reserved", ["CON", "PRN", "AUX", "NUL", "COM1", "COM9", "LPT1", "LPT9"])
    def test_reserved_falls_back(self, reserved):
        """Test that reserved names map to the fallback."""
        assert sanitize_name(reserved) == DEFAULT_NAME
        assert sanitize_name(reserved.lower()) == DEFAULT_NAME

    def test_reserved_with_extension(self):
        """Test that CON.txt is treated like CON."""
        assert sanitize_name("con.txt") == DEFAULT_NAME

    def test_reserved_set_contents(self):
        """Test the reserved set covers all device names."""
        assert len(WINDOWS_RESERVED_NAMES) == 22
        assert "COM0" not in WINDOWS_RESERVED_NAMES

    def test_similar_names_allowed(self):
        """Test that names merely containing a reserved word are kept."""
        assert sanitize_name("console") == "console"
        assert sanitize_name("COM10") == "COM10"


class TestEmptyAndInvalidInput:
    """Tests for empty, whitespace and non-string input."""

    @pytest.mark.parametrize("raw", ["", "   ", "\t\n\r", None, 123, b"bytes"])
    def test_falls_back(self, raw):
        """Test fallback for input with nothing usable."""
        assert sanitize_name(raw) == DEFAULT_NAME

    def test_custom_fallback(self):
        """Test that the fallback literal can be overridden."""
        assert sanitize_name("", fallback="contract") == "contract"

    def test_control_characters_removed(self):
        """Test control characters are dropped."""
        assert sanitize_name("my\x00pro\x1fject\x7f") == "myproject"


class TestUnicodeAndLength:
    """Tests for unicode handling and length bounds."""

    def test_emoji(self):
        """Test that emoji do not crash and produce a safe name."""
        result = sanitize_name("test\U0001F680project")
        assert_safe(result)
        assert result == "testproject"

    def test_accented_characters_transliterated(self):
        """Test accented latin letters reduce to ASCII."""
        assert sanitize_name("t\u00ebst-pr\u00f8j\u00e9ct") == "test-prjct"

    def test_cjk_falls_back(self):
        """Test that input with no ASCII approximation falls back."""
        assert sanitize_name("\u6d4b\u8bd5\u9879\u76ee") == DEFAULT_NAME

    def test_long_name_truncated(self):
        """Test that long names are bounded."""
        result = sanitize_name("a" * 300)
        assert len(result) == MAX_NAME_LENGTH

    def test_truncation_does_not_leave_trailing_dot(self):
        """Test that a truncated name is re-stripped."""
        result = sanitize_name("a" * 49 + ".bbbb")
        assert result == "a" * 49


class TestValidNames:
    """Tests for names that should pass through unchanged."""

    @pytest.mark.parametrize("name", ["valid-project", "my_contract_v1", "Project123", "v1.2.3"])
    def test_preserved(self, name):
        """Test valid names are preserved."""
        assert sanitize_name(name) == name


class TestTotality:
    """Sanitizer output is always safe."""

    @pytest.mark.parametrize(
        "raw",
        [
            "../../etc/passwd",
            "..\\..\\..\\Windows\\System32",
            "/absolute/path",
            "C:\\Users\\evil",
            "\\\\server\\share",
            "LPT3",
            "nul.tar.gz",
            "x" * 10_000,
            "../" * 100,
            "\u202e\u200bhidden",
            "\U0001F600" * 60,
            ". . . .",
            "-_-_-",
            "a/../../b",
        ],
    )
    def test_output_is_safe(self, raw):
        """Test that every input yields a safe name."""
        assert_safe(sanitize_name(raw))
