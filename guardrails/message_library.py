"""
message_library.py
-------------------
Curated copy pools for the behavioral engine.

Voice: observant, minimal, mirror-like. No advice, no cheering, no judgment.
Every string here must pass validate_message (12 words, 60 chars, no
exclamation or question marks, no leading "I").

    - INTERVENTION_MESSAGES: nudges keyed by behavior and intervention type
    - ALIVE_MESSAGES: short acknowledgments keyed by app event
    - WIN_MESSAGES: reinforcement when a pattern breaks
    - SAVING_HABIT_MESSAGES: templates for the saving-habit summary
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


INTERVENTION_TYPES = ("immediate_mirror", "pattern_reflection", "reinforcement")


@dataclass(frozen=True)
class InterventionMessage:
    key: str
    behavior: str
    type: str
    template: str
    moment_types: tuple[str, ...] = field(default_factory=tuple)


def _m(key: str, behavior: str, kind: str, template: str, *moments: str) -> InterventionMessage:
    return InterventionMessage(key, behavior, kind, template, tuple(moments))


INTERVENTION_MESSAGES: tuple[InterventionMessage, ...] = (
    # SMALL RECURRING
    _m("sr_im_01", "small_recurring", "immediate_mirror", "Same place.", "REPEAT_PURCHASE"),
    _m("sr_im_02", "small_recurring", "immediate_mirror", "The usual.", "REPEAT_PURCHASE", "HABITUAL_TIME"),
    _m("sr_im_03", "small_recurring", "immediate_mirror", "Third time this week.", "REPEAT_PURCHASE"),
    _m("sr_im_04", "small_recurring", "immediate_mirror", "Same time again.", "HABITUAL_TIME"),
    _m("sr_im_05", "small_recurring", "immediate_mirror", "Familiar."),
    _m("sr_pr_01", "small_recurring", "pattern_reflection", "Four this week. Same category.", "REPEAT_PURCHASE"),
    _m("sr_pr_02", "small_recurring", "pattern_reflection", "Every morning. Same spot.", "HABITUAL_TIME"),
    _m("sr_pr_03", "small_recurring", "pattern_reflection", "Small amounts. They add up."),
    _m("sr_pr_04", "small_recurring", "pattern_reflection", "The habit runs deep."),
    _m("sr_rf_01", "small_recurring", "reinforcement", "Skipped it today."),
    _m("sr_rf_02", "small_recurring", "reinforcement", "The pattern broke."),
    _m("sr_rf_03", "small_recurring", "reinforcement", "Different today."),

    # STRESS SPENDING
    _m("ss_im_01", "stress_spending", "immediate_mirror", "Late night.", "LATE_NIGHT_COMFORT"),
    _m("ss_im_02", "stress_spending", "immediate_mirror", "After hours.", "LATE_NIGHT_COMFORT", "POST_WORK_RELEASE"),
    _m("ss_im_03", "stress_spending", "immediate_mirror", "End of day.", "POST_WORK_RELEASE"),
    _m("ss_im_04", "stress_spending", "immediate_mirror", "Comfort purchase.", "LATE_NIGHT_COMFORT", "POST_WORK_RELEASE"),
    _m("ss_im_05", "stress_spending", "immediate_mirror", "Second one tonight.", "STRESS_CLUSTER"),
    _m("ss_pr_01", "stress_spending", "pattern_reflection", "Three nights this week. Same pattern.", "LATE_NIGHT_COMFORT"),
    _m("ss_pr_02", "stress_spending", "pattern_reflection", "After work again. A habit forming.", "POST_WORK_RELEASE"),
    _m("ss_pr_03", "stress_spending", "pattern_reflection", "Comfort categories. Late hours."),
    _m("ss_pr_04", "stress_spending", "pattern_reflection", "Two in an hour. Cluster.", "STRESS_CLUSTER"),
    _m("ss_rf_01", "stress_spending", "reinforcement", "No late-night orders."),
    _m("ss_rf_02", "stress_spending", "reinforcement", "Quiet night."),
    _m("ss_rf_03", "stress_spending", "reinforcement", "The urge passed."),

    # END OF MONTH
    _m("eom_im_01", "end_of_month", "immediate_mirror", "Last week of month.", "FIRST_BREACH", "COLLAPSE_START"),
    _m("eom_im_02", "end_of_month", "immediate_mirror", "End of month territory."),
    _m("eom_im_03", "end_of_month", "immediate_mirror", "The final stretch."),
    _m("eom_im_04", "end_of_month", "immediate_mirror", "Familiar timing."),
    _m("eom_pr_01", "end_of_month", "pattern_reflection", "Started strong. Slipping now.", "FIRST_BREACH"),
    _m("eom_pr_02", "end_of_month", "pattern_reflection", "Same as last month. Same days.", "COLLAPSE_START"),
    _m("eom_pr_03", "end_of_month", "pattern_reflection", "History repeating."),
    _m("eom_rf_01", "end_of_month", "reinforcement", "Day 25. Still holding."),
    _m("eom_rf_02", "end_of_month", "reinforcement", "Different this month."),
    _m("eom_rf_03", "end_of_month", "reinforcement", "Past the usual breaking point."),
)


ALIVE_MESSAGES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "transaction:created": (
        "Noted.", "Logged.", "Recorded.", "Got it.", "Captured.",
        "Tracked.", "Added to the ledger.", "Another one recorded.",
    ),
    "transaction:updated": ("Updated.", "Change noted.", "Adjusted.", "Correction recorded."),
    "transaction:deleted": ("Removed.", "Gone.", "Erased from the ledger.", "Cleared."),
    "budget:created": ("New boundary set.", "Budget established.", "Limits defined."),
    "budget:exceeded": ("Over the line.", "Budget breached.", "Past the boundary."),
    "budget:warning": ("Getting close.", "Watch this one.", "Nearing the edge."),
    "goal:created": ("Goal set.", "A destination chosen.", "Target locked."),
    "goal:progress": ("Moving forward.", "Progress.", "Gaining ground.", "Closer."),
    "goal:completed": ("Goal reached.", "Target achieved.", "Mission complete."),
    "bill:paid": ("Bill settled.", "Paid.", "Done."),
    "subscription:cancelled": ("One less subscription.", "Cancelled.", "That cost stops here."),
    "streak:updated": ("Streak continues.", "Consistent.", "Day after day."),
})
DEFAULT_ALIVE_MESSAGE = "Noted."


WIN_MESSAGES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "pattern_break": ("The pattern broke.", "Different today.", "Not this time.", "Skipped."),
    "improvement": ("Different this week.", "Less than before.", "Something shifted."),
    "streak_7": ("Seven days.", "One week."),
    "streak_14": ("Two weeks.", "Fourteen days."),
    "streak_30": ("One month.", "Thirty days."),
    "streak_60": ("Two months.", "Sixty days."),
    "streak_90": ("Three months.", "Ninety days."),
})
DEFAULT_WIN_MESSAGE = "Something changed."


SAVING_HABIT_MESSAGES: Mapping[str, str] = MappingProxyType({
    "long_streak": "Saved {weeks} weeks in a row.",
    "short_streak": "{weeks} weeks of saving in a row.",
    "strong": "Most weeks end with money left over.",
    "building": "A saving habit is taking shape.",
    "inconsistent": "Saved overall. Some weeks ran short.",
})
