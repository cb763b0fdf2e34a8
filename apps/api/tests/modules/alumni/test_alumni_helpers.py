"""
Tests for alumni helpers.
"""

from alumni_api.modules.alumni.helpers import (
    generate_token,
    hash_token,
    mask_email,
    normalize_email,
    pick_available_slug,
    slugify,
)


class TestSlugify:
    def test_simple_name(self):
        assert slugify("Amit Sharma") == "amit-sharma"

    def test_collapses_whitespace_and_punctuation(self):
        assert slugify("  Lt. Col.  R.K.   Singh ") == "lt-col-r-k-singh"

    def test_folds_accents(self):
        assert slugify("José Núñez") == "jose-nunez"

    def test_nothing_usable_falls_back(self):
        assert slugify("अमित") == "alumnus"
        assert slugify("!!!") == "alumnus"

    def test_truncates_long_names(self):
        slug = slugify("a" * 300)
        assert len(slug) == 200


class TestPickAvailableSlug:
    def test_base_free(self):
        assert pick_available_slug("amit-sharma", set()) == "amit-sharma"

    def test_first_suffix(self):
        assert pick_available_slug("amit-sharma", {"amit-sharma"}) == "amit-sharma-1"

    def test_skips_taken_suffixes(self):
        taken = {"amit-sharma", "amit-sharma-1", "amit-sharma-2"}
        assert pick_available_slug("amit-sharma", taken) == "amit-sharma-3"

    def test_fills_gap(self):
        taken = {"amit-sharma", "amit-sharma-2"}
        assert pick_available_slug("amit-sharma", taken) == "amit-sharma-1"


class TestTokens:
    def test_tokens_are_unique(self):
        assert generate_token() != generate_token()

    def test_hash_is_stable_hex(self):
        digest = hash_token("abc")
        assert digest == hash_token("abc")
        assert len(digest) == 64
        assert digest != "abc"


class TestEmailHelpers:
    def test_normalize(self):
        assert normalize_email("  Amit.Sharma@Example.COM ") == "amit.sharma@example.com"

    def test_mask(self):
        assert mask_email("john.doe@example.com") == "j***@example.com"
        assert mask_email("j@example.com") == "*@example.com"
        assert mask_email("invalid") == "***"
