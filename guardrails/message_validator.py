"""
message_validator.py
---------------------
Rule-based validation for user-facing copy.

A Rulebook is a plain mapping (see message_rules / ai_rules in config.yaml):
word and character ceilings, a forbidden-phrase list and a few toggles.
TextValidator applies one rulebook to a string and returns a
ValidationResult. It never raises, whatever the input.

Rules run in a fixed order and accumulate; nothing short-circuits:
    1. Word count ceiling
    2. Character length ceiling
    3. Forbidden phrases (case-insensitive substring)
    4. Exclamation mark
    5. Question mark (short-form only)
    6. Emoji
    7. Numbered / bulleted list markup
    8. Leading "I" (short-form only)

Emoji and list markup set should_block: they can't be safely rewritten.
Everything else is correctable through `sanitized`.
"""

import re
from typing import Any, Mapping

from core.models import ValidationResult
from config.config_loader import get_rulebook


EMOJI_PATTERN = re.compile(
    "["
    "\U0001F000-\U0001FAFF"   # Mahjong .. symbols & pictographs extended-A
    "\u2600-\u27BF"           # Misc symbols, dingbats
    "\u2B00-\u2BFF"           # Arrows, stars
    "\uFE0F"                  # Variation selector-16
    "\u200D"                  # Zero-width joiner
    "]"
)
LIST_PATTERN = re.compile(r"^\s*(?:\d+[.)]\s|[-*]\s|\u2022)", re.MULTILINE)
LEADING_I_PATTERN = re.compile(r"^\s*I(?:\s|['\u2019]|$)")
REPEATED_PERIODS = re.compile(r"\.{2,}")

EXCLAMATION = "Contains exclamation"
QUESTION = "Contains question"
EMOJI = "Contains emoji"
LIST_MARKUP = "Contains list"
LEADING_I = 'Starts with "I"'

BLOCKING_VIOLATIONS = frozenset({EMOJI, LIST_MARKUP})


class TextValidator:
    """
    Applies one rulebook to candidate text.

    Usage:
        validator = TextValidator(get_rulebook("message_rules"))
        result = validator.validate("Same place.")
    """

    def __init__(self, rules: Mapping[str, Any]):
        self.rules = rules
        self.max_words = int(rules["max_words"])
        self.max_chars = int(rules["max_chars"])
        self.word_violation = rules.get("word_violation", "Too many words")
        self.forbidden_phrases = tuple(p.lower() for p in rules["forbidden_phrases"])
        self.check_question = bool(rules.get("check_question", True))
        self.check_leading_pronoun = bool(rules.get("check_leading_pronoun", True))

    def validate(self, text: str) -> ValidationResult:
        text = text or ""
        violations: list[str] = []

        words = text.split()
        if len(words) > self.max_words:
            violations.append(f"{self.word_violation} ({len(words)}/{self.max_words} words)")

        if len(text) > self.max_chars:
            violations.append(f"Too long ({len(text)}/{self.max_chars} chars)")

        lowered = text.lower()
        for phrase in self.forbidden_phrases:
            if phrase in lowered:
                violations.append(f'Forbidden phrase: "{phrase}"')

        if "!" in text:
            violations.append(EXCLAMATION)

        if self.check_question and "?" in text:
            violations.append(QUESTION)

        if EMOJI_PATTERN.search(text):
            violations.append(EMOJI)

        if LIST_PATTERN.search(text):
            violations.append(LIST_MARKUP)

        if self.check_leading_pronoun and LEADING_I_PATTERN.match(text):
            violations.append(LEADING_I)

        return ValidationResult(
            is_valid=not violations,
            violations=violations,
            should_block=any(v in BLOCKING_VIOLATIONS for v in violations),
            sanitized=self.sanitize(text, has_violations=bool(violations)),
        )

    def sanitize(self, text: str, has_violations: bool = True) -> str:
        """
        Best-effort rewrite: !/? become periods, word count is truncated,
        repeated periods collapse, and a trailing period is enforced when
        anything was wrong.
        """
        cleaned = text.replace("!", ".").replace("?", ".")

        words = cleaned.split()
        if len(words) > self.max_words:
            cleaned = " ".join(words[:self.max_words])

        cleaned = REPEATED_PERIODS.sub(".", cleaned).strip()

        if has_violations and cleaned and not cleaned.endswith("."):
            cleaned += "."
        return cleaned


def validate_message(text: str, rules: Mapping[str, Any] | None = None) -> ValidationResult:
    """Validate short nudge copy (12 words / 60 chars by default)."""
    return TextValidator(rules if rules is not None else get_rulebook("message_rules")).validate(text)
