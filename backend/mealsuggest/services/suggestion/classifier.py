from mealsuggest.services.suggestion.algorithm_config import MatchThresholds
from mealsuggest.services.suggestion.types import MatchType, SuggestionReason

_REASONS = {
    MatchType.PERFECT: SuggestionReason.PERFECT_MATCH,
    MatchType.GOOD: SuggestionReason.GOOD_MATCH,
    MatchType.PARTIAL: SuggestionReason.PARTIAL_MATCH,
    MatchType.POOR: SuggestionReason.POOR_MATCH,
}


def classify_match(
    score: float, missing_mandatory_count: int, thresholds: MatchThresholds
) -> tuple[MatchType, SuggestionReason]:
    """Map a score to its tier. Lower bounds are inclusive; a perfect match cannot miss a mandatory item."""
    if score >= thresholds.perfect_match and missing_mandatory_count == 0:
        match_type = MatchType.PERFECT
    elif score >= thresholds.good_match:
        match_type = MatchType.GOOD
    elif score >= thresholds.minimum_viable:
        match_type = MatchType.PARTIAL
    else:
        match_type = MatchType.POOR
    return match_type, _REASONS[match_type]
