"""
ai_guardrails.py
-----------------
Validation for longer AI-generated replies, plus curated fallbacks.

Uses the same TextValidator as short nudges, with the ai_rules rulebook:
a looser word ceiling, an AI-tuned forbidden-phrase list, and no question or
leading-pronoun checks (first-person AI voice is tolerated here).

Every fallback string must pass validate_ai_response on its own. The test
suite runs the whole pool through the validator.
"""

import logging
import random
from types import MappingProxyType
from typing import Any, Mapping

from core.models import ValidationResult
from config.config_loader import get_rulebook
from guardrails.message_validator import TextValidator

logger = logging.getLogger(__name__)


AI_FALLBACK_RESPONSES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "default": (
        "Noted.",
        "The ledger is up to date.",
        "Here is what the data shows.",
        "Same data, fresh look.",
        "The numbers are here whenever you want them.",
    ),
    "small_recurring": (
        "Small amounts. They add up.",
        "Same category, several times this week.",
        "A familiar purchase, again.",
        "The small ones repeat. The total grows quietly.",
    ),
    "stress_spending": (
        "Late hours, comfort categories. A pattern worth knowing.",
        "Evenings carry most of this spending.",
        "Comfort purchases cluster after long days.",
        "The timing repeats. Late, and familiar.",
    ),
    "end_of_month": (
        "The last days of the month look different.",
        "Spending picks up near month end.",
        "Started steady. The final stretch runs faster.",
        "Same calendar, same shift.",
    ),
})


def validate_ai_response(text: str, rules: Mapping[str, Any] | None = None) -> ValidationResult:
    """Validate an AI reply (25 words by default)."""
    return TextValidator(rules if rules is not None else get_rulebook("ai_rules")).validate(text)


def get_ai_fallback_response(
    behavior_type: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """
    Returns a random fallback for the behavior, or from the default pool
    when the behavior is None or unknown.
    """
    pool = AI_FALLBACK_RESPONSES.get(behavior_type or "default") or AI_FALLBACK_RESPONSES["default"]
    return (rng or random).choice(pool)


def guard_ai_response(
    text: str,
    behavior_type: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """
    Returns display-safe text for an AI reply.

        - valid           → the reply unchanged
        - correctable     → the sanitized reply, if that passes on its own
        - blocked/unfixable → a fallback for the behavior
    """
    result = validate_ai_response(text)
    if result.is_valid:
        return text

    if not result.should_block and result.sanitized:
        if validate_ai_response(result.sanitized).is_valid:
            return result.sanitized

    logger.info(f"AI reply replaced by fallback. Violations: {result.violations}")
    return get_ai_fallback_response(behavior_type, rng=rng)
