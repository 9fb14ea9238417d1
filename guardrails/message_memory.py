"""
message_memory.py
------------------
Recency-aware message selection.

RecentMessageMemory is a small bounded buffer of recently shown messages.
A MessageSelector owns one per message kind (interventions by key, alive
messages by text), so neither kind evicts the other's history and two
selectors never share state.

Usage:
    selector = MessageSelector()
    text = selector.select_alive_message("transaction:created")
    nudge = selector.select_intervention("small_recurring", "immediate_mirror")
    selector.reset_memory()
"""

import logging
import random
from collections import deque
from typing import Iterable

from guardrails.message_library import (
    ALIVE_MESSAGES,
    DEFAULT_ALIVE_MESSAGE,
    DEFAULT_WIN_MESSAGE,
    INTERVENTION_MESSAGES,
    WIN_MESSAGES,
    InterventionMessage,
)
from guardrails.message_validator import validate_message

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_SIZE = 6


class RecentMessageMemory:
    """Bounded FIFO of recent message keys. Oldest entry is evicted on overflow."""

    def __init__(self, size: int = DEFAULT_MEMORY_SIZE):
        if size < 1:
            raise ValueError(f"Memory size must be positive, got {size}")
        self._items: deque[str] = deque(maxlen=size)

    @property
    def size(self) -> int:
        return self._items.maxlen

    def remember(self, key: str) -> None:
        self._items.append(key)

    def recent(self) -> list[str]:
        """Oldest first."""
        return list(self._items)

    def reset(self) -> None:
        self._items.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"RecentMessageMemory(size={self.size}, recent={self.recent()})"


class MessageSelector:
    """
    Picks copy from the message library, avoiding recent repeats.

    When every candidate was used recently, the full pool is reused rather
    than returning nothing.
    """

    def __init__(
        self,
        memory: RecentMessageMemory | None = None,
        rng: random.Random | None = None,
        messages: Iterable[InterventionMessage] = INTERVENTION_MESSAGES,
        alive_memory: RecentMessageMemory | None = None,
    ):
        self.memory = memory if memory is not None else RecentMessageMemory()
        self.alive_memory = alive_memory if alive_memory is not None else RecentMessageMemory()
        self.rng = rng or random.Random()
        self.messages = tuple(messages)

    def select_alive_message(self, event: str) -> str:
        pool = ALIVE_MESSAGES.get(event)
        if not pool:
            return DEFAULT_ALIVE_MESSAGE
        selected = self._pick(list(pool), self.alive_memory, key=lambda m: m)
        self.alive_memory.remember(selected)
        return selected

    def select_intervention(
        self,
        behavior: str,
        intervention_type: str,
        moment_type: str | None = None,
    ) -> InterventionMessage | None:
        """
        Returns a message for the behavior and intervention type, preferring
        ones tagged with the moment type. None if the library has no match.
        """
        candidates = [
            m for m in self.messages
            if m.behavior == behavior and m.type == intervention_type
        ]
        if not candidates:
            return None

        if moment_type:
            tagged = [m for m in candidates if moment_type in m.moment_types]
            if tagged:
                candidates = tagged

        selected = self._pick(candidates, self.memory, key=lambda m: m.key)
        self.memory.remember(selected.key)
        return selected

    def compose_nudge(
        self,
        behavior: str,
        intervention_type: str = "pattern_reflection",
        moment_type: str | None = None,
    ) -> str | None:
        """
        Selected intervention text, passed through the message validator.
        Blocked copy is dropped; correctable copy is sanitized.
        """
        message = self.select_intervention(behavior, intervention_type, moment_type)
        if message is None:
            return None

        result = validate_message(message.template)
        if result.is_valid:
            return message.template
        if result.should_block:
            logger.warning(f"Nudge {message.key} blocked: {result.violations}")
            return None
        return result.sanitized

    def select_win_message(self, win_type: str, streak_days: int | None = None) -> str:
        key = win_type
        if win_type == "streak_milestone" and streak_days:
            key = f"streak_{streak_days}"
        pool = WIN_MESSAGES.get(key)
        if not pool:
            return DEFAULT_WIN_MESSAGE
        return self.rng.choice(pool)

    def reset_memory(self) -> None:
        self.memory.reset()
        self.alive_memory.reset()

    def _pick(self, candidates: list, memory: RecentMessageMemory, key) -> object:
        unused = [c for c in candidates if key(c) not in memory]
        return self.rng.choice(unused or candidates)
