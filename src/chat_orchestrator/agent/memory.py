"""Bounded per-user conversation history."""

from __future__ import annotations

from collections import deque

from chat_orchestrator.types import Turn


class ConversationMemory:
    """Keeps the most recent `max_turns` turns for each user, oldest dropped first."""

    def __init__(self, max_turns: int = 20) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be positive")
        self.max_turns = max_turns
        self._histories: dict[str, deque[Turn]] = {}

    def append(self, user_id: str, user_turn: Turn, assistant_turn: Turn) -> None:
        history = self._histories.get(user_id)
        if history is None:
            history = deque(maxlen=self.max_turns)
            self._histories[user_id] = history
        history.append(user_turn)
        history.append(assistant_turn)

    def get(self, user_id: str, limit: int | None = None) -> list[Turn]:
        """Return up to `limit` most recent turns in chronological order."""
        history = self._histories.get(user_id)
        if not history:
            return []
        turns = list(history)
        if limit is not None:
            turns = turns[-limit:] if limit > 0 else []
        return turns

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._histories.clear()
        else:
            self._histories.pop(user_id, None)

    def stats(self) -> dict[str, int]:
        return {
            "active_conversations": len(self._histories),
            "total_turns": sum(len(history) for history in self._histories.values()),
        }
