"""
Unit tests for listing title scoring
"""

import pytest

from pricing.matching.relevance import build_number_pattern, is_graded, score_title
from schemas.catalog import CatalogItem, RejectReason


class TestHardRejects:
    """Test stopword and presale rejects"""

    @pytest.mark.parametrize("title", [
        "Michael Jordan 1986 Fleer #57 lot of 3",
        "1986 Fleer Basketball Wax Box",
        "Michael Jordan Fleer #57 Reprint",
        "Charizard custom proxy card",
        "Michael Jordan Funko Pop",
    ])
    def test_stopword_reject(self, jordan_rookie, title):
        result = score_title(jordan_rookie, title)
        assert result.score == 0
        assert result.reject_reason == RejectReason.STOPWORD
        assert result.graded is False

    def test_presale_reject(self, jordan_rookie):
        result = score_title(jordan_rookie, "1986 Fleer Michael Jordan #57 PRE-SALE")
        assert result.score == 0
        assert result.reject_reason == RejectReason.PRESALE

    def test_preorder_reject(self, charizard):
        assert score_title(charizard, "Charizard #4 Base Set preorder").reject_reason == RejectReason.PRESALE

    def test_stopword_must_be_whole_word(self, charizard):
        # "Boxed" is not "box"
        assert score_title(charizard, "Charizard 4/102 Base Set Boxed").reject_reason is None


class TestSignals:
    """Test additive scoring"""

    def test_all_raw_signals(self, jordan_rookie):
        result = score_title(jordan_rookie, "1986 Fleer Michael Jordan #57 Rookie RC Basketball")
        assert result.score == 30 + 35 + 15 + 10 + 6
        assert result.graded is False
        assert result.reject_reason is None

    def test_graded_adds_weight_and_flag(self, jordan_rookie):
        result = score_title(jordan_rookie, "1986 Fleer Michael Jordan #57 PSA 8 Basketball")
        assert result.score == 30 + 35 + 15 + 10 + 6 + 6
        assert result.graded is True

    def test_graded_independent_of_acceptance(self, charizard):
        result = score_title(charizard, "Pikachu Jungle BGS 9.5")
        assert result.graded is True
        assert result.score == 6

    def test_case_insensitive(self, charizard):
        assert score_title(charizard, "CHARIZARD #4 BASE SET").score == 30 + 35 + 15

    def test_category_token(self, charizard):
        assert score_title(charizard, "Charizard Pokémon").score == 30 + 6

    def test_year_must_be_whole_word(self, jordan_rookie):
        assert score_title(jordan_rookie, "Michael Jordan 19861").score == 30

    def test_set_uses_first_token_only(self, charizard):
        assert score_title(charizard, "Charizard Base").score == 30 + 15

    def test_name_falls_back_when_no_player(self):
        item = CatalogItem(id="m1", category="mtg", name="Black Lotus", set_name="Alpha Edition", number="232")
        assert score_title(item, "MTG Alpha Black Lotus 232").score == 30 + 35 + 15 + 6

    def test_empty_title(self, charizard):
        result = score_title(charizard, None)
        assert result.score == 0
        assert result.reject_reason is None


class TestNumberPattern:
    """Test per-item number matching"""

    def test_hash_and_bare_forms(self):
        pattern = build_number_pattern("12")
        assert pattern.search("Card #12")
        assert pattern.search("Card # 12 Holo")
        assert pattern.search("Card 12 Holo")

    def test_boundary_exact(self):
        pattern = build_number_pattern("12")
        assert not pattern.search("Card #123")
        assert not pattern.search("Card 112")

    def test_fraction_item_number(self):
        pattern = build_number_pattern("4/102")
        assert pattern.search("Charizard 4/102")
        assert pattern.search("Charizard 4 / 102")
        assert pattern.search("Charizard #4")
        assert not pattern.search("Charizard 14/102")

    def test_plain_number_matches_fraction_title(self):
        assert build_number_pattern("4").search("Charizard 4/102 Holo")

    def test_sub_serial_tolerates_spacing(self):
        pattern = build_number_pattern("SWSH-EN050")
        assert pattern.search("Promo SWSH-EN050")
        assert pattern.search("Promo SWSH EN050")
        assert pattern.search("Promo SWSHEN050")

    def test_no_number(self):
        assert build_number_pattern(None) is None
        assert build_number_pattern("  ") is None


class TestIsGraded:
    """Test grading markers"""

    @pytest.mark.parametrize("title", ["PSA 10", "PSA10", "bgs 9.5 pristine", "SGC", "CGC 9", "Charizard PSA-8 Base Set"])
    def test_graded_titles(self, title):
        assert is_graded(title)

    @pytest.mark.parametrize("title", [
        "Near Mint",
        "NM-MT",
        "PSAX",
        "Mint condition",
        "Charizard Near Mint 4/102 Base Set Holo",
        "Charizard #4 Base Set Mint 1st Edition",
        "Gem Mint 10 condition",
    ])
    def test_raw_titles(self, title):
        assert not is_graded(title)
