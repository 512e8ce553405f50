"""
Unit Tests for Input Sanitization

Tests for redirect URL validation and string/answer cleanup.
"""

import pytest
from utils.sanitize import (
    validate_redirect_url,
    sanitize_string,
    sanitize_answer,
)
from utils.exceptions import InvalidRequestError


class TestRedirectURLValidation:
    """Tests for redirect URL validation."""

    def test_valid_https_url(self):
        """Valid HTTPS URL should pass validation."""
        url = "https://example.com/thanks"
        assert validate_redirect_url(url) == url

    def test_valid_http_url(self):
        url = "http://example.com/thanks"
        assert validate_redirect_url(url) == url

    def test_strips_whitespace(self):
        """URL with whitespace should be stripped."""
        assert validate_redirect_url("  https://example.com/thanks  ") == "https://example.com/thanks"

    def test_empty_means_no_redirect(self):
        assert validate_redirect_url(None) is None
        assert validate_redirect_url("") is None
        assert validate_redirect_url("   ") is None

    def test_invalid_scheme_raises_error(self):
        """Invalid scheme (javascript, ftp) should raise error."""
        with pytest.raises(InvalidRequestError):
            validate_redirect_url("javascript:alert(1)")

        with pytest.raises(InvalidRequestError):
            validate_redirect_url("ftp://example.com/file")

    def test_relative_url_raises_error(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_redirect_url("/thanks")

        assert exc_info.value.details["field"] == "redirectUrl"

    def test_non_string_raises_error(self):
        with pytest.raises(InvalidRequestError):
            validate_redirect_url(42)


class TestStringSanitization:
    """Tests for string sanitization."""

    def test_strips_whitespace(self):
        assert sanitize_string("  hello  ") == "hello"

    def test_limits_length(self):
        """Long strings should be truncated."""
        assert len(sanitize_string("a" * 2000, max_length=100)) == 100

    def test_strips_html_by_default(self):
        """HTML tags should be stripped by default."""
        assert sanitize_string("<script>alert(1)</script>Hello") == "alert(1)Hello"

    def test_allows_html_when_specified(self):
        assert sanitize_string("<b>Bold</b>", allow_html=True) == "<b>Bold</b>"

    def test_empty_input(self):
        assert sanitize_string("") == ""
        assert sanitize_string(None) == ""


class TestAnswerSanitization:
    """Tests for submitted answer cleanup."""

    def test_string_answer(self):
        assert sanitize_answer("  <i>Ada</i> ") == "Ada"

    def test_list_answer_cleaned_per_item(self):
        assert sanitize_answer([" Python ", "<b>Go</b>"]) == ["Python", "Go"]

    @pytest.mark.parametrize("value", [None, 3, 2.5, True, {"url": "https://x"}])
    def test_other_values_pass_through(self, value):
        assert sanitize_answer(value) == value
