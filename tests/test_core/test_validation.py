import pytest

from core.exceptions import ValidationError
from core.validation import MAX_PAGE_SIZE, MAX_TAG_LENGTH, InputValidator


class TestInputValidator:
    """Test request input normalization."""

    def test_require_id(self):
        assert InputValidator.require_id("photoId", "  p1 ") == "p1"

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_require_id_rejects_missing(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.require_id("photoId", value)

        assert exc_info.value.details["field"] == "photoId"

    def test_clean_text_strips_control_characters(self):
        assert InputValidator.clean_text("text", "  hi\x00 there\x07 ") == "hi there"

    def test_clean_text_length_limit(self):
        with pytest.raises(ValidationError, match="no more than 5"):
            InputValidator.clean_text("text", "abcdef", max_length=5)

    def test_optional_text(self):
        assert InputValidator.optional_text("bio", None) is None
        assert InputValidator.optional_text("bio", "  hello ") == "hello"

    @pytest.mark.parametrize("username", ["al", "has space", "x" * 31, "bad!"])
    def test_invalid_usernames(self, username):
        with pytest.raises(ValidationError):
            InputValidator.validate_username(username)

    def test_valid_username(self):
        assert InputValidator.validate_username(" alice.smith_1 ") == "alice.smith_1"

    def test_email_is_lowercased(self):
        assert InputValidator.validate_email("Alice@Example.COM") == "alice@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_email("not-an-email")

    @pytest.mark.parametrize(
        "url", ["ftp://example.com/a.jpg", "https://", "javascript:alert(1)"]
    )
    def test_invalid_urls(self, url):
        with pytest.raises(ValidationError):
            InputValidator.validate_url(url)

    def test_tags_are_normalized_and_deduplicated(self):
        assert InputValidator.validate_tags(["#Sunset", "sunset", " Beach ", ""]) == [
            "sunset",
            "beach",
        ]

    def test_pagination_clamps_limit(self):
        assert InputValidator.validate_pagination(2, 500) == (2, MAX_PAGE_SIZE)

    def test_pagination_rejects_page_zero(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_pagination(0, 10)

    def test_long_tags_are_deduplicated_after_truncation(self):
        prefix = "a" * MAX_TAG_LENGTH

        assert InputValidator.validate_tags([prefix + "one", prefix + "two"]) == [prefix]
