import pytest

from mention_monitor.core.sentiment import label_for, score


def test_positive_text():
    result = score("I love this product, it is great")
    assert result.label == "positive"
    assert result.score > 0


def test_negative_text():
    result = score("I hate this, it is terrible")
    assert result.label == "negative"
    assert result.score < 0


def test_neutral_text_scores_zero():
    result = score("The package arrived on Tuesday")
    assert result.label == "neutral"
    assert result.score == 0


@pytest.mark.parametrize("text", ["", "   "])
def test_empty_text_is_neutral(text):
    result = score(text)
    assert result.label == "neutral"
    assert result.score == 0


def test_label_follows_sign_only():
    assert label_for(1) == "positive"
    assert label_for(-1) == "negative"
    assert label_for(0) == "neutral"


def test_score_is_an_integer_word_sum():
    result = score("I love this product, it is great")
    assert isinstance(result.score, int)
    assert result.score == score("love").score + score("great").score
