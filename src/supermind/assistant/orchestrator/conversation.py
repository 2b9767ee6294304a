"""
Conversation History.

Ordered record of the committed turns of one orchestrator. The first
turn is always the single system turn holding the operating
instructions; the rest alternate between user and assistant turns as
they are committed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ..domain.entities import Message, MessageRole, Turn
from ..domain.exceptions import InvalidHistoryError

logger = logging.getLogger(__name__)


class ConversationHistory:
    """In-process conversation history of one session.

    Usage:
        history = ConversationHistory(system_prompt)
        turn = history.append(MessageRole.USER, "Hello")
        history.rollback(turn)  # on failure

        snapshot = history.snapshot()
        history.restore(snapshot)
    """

    def __init__(self, system_prompt: str):
        """Initialize the history with its system turn.

        Args:
            system_prompt: Operating instructions of the orchestrator
        """
        self._system_turn = Turn(role=MessageRole.SYSTEM, content=system_prompt)
        self._turns: list[Turn] = [self._system_turn]

    @property
    def system_prompt(self) -> str:
        return self._turns[0].content

    def append(self, role: MessageRole, content: str) -> Turn:
        """Append a user or assistant turn.

        Raises:
            ValueError: If the role is not user or assistant
        """
        if role not in (MessageRole.USER, MessageRole.ASSISTANT):
            raise ValueError(f"Cannot append a {role.value} turn to the history")
        turn = Turn(role=role, content=content)
        self._turns.append(turn)
        return turn

    def rollback(self, turn: Turn) -> bool:
        """Remove a previously appended turn.

        The turn is matched by identity, searching from the end.

        Returns:
            True if the turn was found and removed
        """
        for index in range(len(self._turns) - 1, 0, -1):
            if self._turns[index] is turn:
                del self._turns[index]
                return True
        logger.warning(f"Rollback of a {turn.role.value} turn not found in history")
        return False

    def reset(self) -> None:
        """Drop every turn except the system turn."""
        del self._turns[1:]

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def restore(self, turns: Iterable[Turn]) -> None:
        """Replace the whole history.

        Raises:
            InvalidHistoryError: If the turns do not start with exactly
                one system turn
        """
        turns = list(turns)
        self.validate(turns)
        self._turns = turns

    @staticmethod
    def validate(turns: Sequence[Turn]) -> None:
        if not turns or turns[0].role != MessageRole.SYSTEM:
            raise InvalidHistoryError("History must start with a system turn")
        for turn in turns[1:]:
            if turn.role == MessageRole.SYSTEM:
                raise InvalidHistoryError("History must contain exactly one system turn")
            if turn.role not in (MessageRole.USER, MessageRole.ASSISTANT):
                raise InvalidHistoryError(f"History cannot hold {turn.role.value} turns")

    def to_messages(self) -> list[Message]:
        """Provider-facing messages for every non-system turn."""
        return [turn.to_message() for turn in self._turns[1:]]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(tuple(self._turns))
