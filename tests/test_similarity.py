from __future__ import annotations

import pytest

from bidledger.similarity import TfidfScorer, TokenBlendScorer, create_scorer


@pytest.fixture(params=[TokenBlendScorer, TfidfScorer])
def scorer(request):
    return request.param()


def test_identical_names_score_one(scorer) -> None:
    assert scorer.score("abc electrical", "abc electrical") == 1.0


def test_empty_name_scores_zero(scorer) -> None:
    assert scorer.score("", "abc electrical") == 0.0
    assert scorer.score("abc electrical", "") == 0.0


@pytest.mark.parametrize(
    "a, b",
    [("abc electrical", "abc electric"), ("delta builders", "builders delta"), ("smith", "jones roofing")],
)
def test_scores_are_symmetric_and_bounded(scorer, a: str, b: str) -> None:
    forward = scorer.score(a, b)
    assert forward == pytest.approx(scorer.score(b, a))
    assert 0.0 <= forward <= 1.0


def test_token_blend_handles_reordered_tokens() -> None:
    assert TokenBlendScorer().score("delta builders", "builders delta") == pytest.approx(1.0)


def test_token_blend_does_not_trust_subsets_fully() -> None:
    assert TokenBlendScorer().score("abc", "abc electrical") < 0.9


def test_close_variant_scores_higher_than_unrelated(scorer) -> None:
    close = scorer.score("abc electrical", "abc electric")
    unrelated = scorer.score("abc electrical", "omega concrete")
    assert close > unrelated


def test_create_scorer_falls_back_to_token_blend(caplog) -> None:
    assert isinstance(create_scorer("tfidf"), TfidfScorer)
    assert isinstance(create_scorer("token_blend"), TokenBlendScorer)
    with caplog.at_level("WARNING"):
        assert isinstance(create_scorer("soundex"), TokenBlendScorer)
    assert "soundex" in caplog.text
