from mealsuggest.services.suggestion.algorithm_config import MatchThresholds
from mealsuggest.services.suggestion.classifier import classify_match
from mealsuggest.services.suggestion.types import MatchType, SuggestionReason

THRESHOLDS = MatchThresholds()


def test_classify_tiers():
    assert classify_match(100, 0, THRESHOLDS) == (MatchType.PERFECT, SuggestionReason.PERFECT_MATCH)
    assert classify_match(80, 0, THRESHOLDS) == (MatchType.GOOD, SuggestionReason.GOOD_MATCH)
    assert classify_match(60, 0, THRESHOLDS) == (MatchType.PARTIAL, SuggestionReason.PARTIAL_MATCH)
    assert classify_match(10, 0, THRESHOLDS) == (MatchType.POOR, SuggestionReason.POOR_MATCH)


def test_boundaries_resolve_to_higher_tier():
    assert classify_match(95, 0, THRESHOLDS)[0] == MatchType.PERFECT
    assert classify_match(75, 0, THRESHOLDS)[0] == MatchType.GOOD
    assert classify_match(50, 0, THRESHOLDS)[0] == MatchType.PARTIAL
    assert classify_match(49.99, 0, THRESHOLDS)[0] == MatchType.POOR


def test_perfect_requires_all_mandatory():
    assert classify_match(96, 1, THRESHOLDS)[0] == MatchType.GOOD


def test_custom_thresholds():
    thresholds = MatchThresholds(perfect_match=90, good_match=60, minimum_viable=30)
    assert classify_match(90, 0, thresholds)[0] == MatchType.PERFECT
    assert classify_match(30, 0, thresholds)[0] == MatchType.PARTIAL


def test_classification_is_monotonic_in_score():
    order = [MatchType.POOR, MatchType.PARTIAL, MatchType.GOOD, MatchType.PERFECT]
    previous = 0
    for tenth in range(0, 1001):
        tier = order.index(classify_match(tenth / 10, 0, THRESHOLDS)[0])
        assert tier >= previous
        previous = tier
