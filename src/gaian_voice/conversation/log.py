"""
Conversation log.

Append-only, ordered record of turns. The directive is seeded once at
construction and is always the first turn; nothing is ever edited or removed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from gaian_voice.conversation.schemas import Turn, TurnRole, WireMessage

logger = logging.getLogger(__name__)

TurnListener = Callable[[Turn], None]


class ConversationLog:
    """
    Owns every Turn of a session.

    The presentation layer reads ``visible_turns`` or subscribes to be told
    about each appended turn; the coordinator is the only writer.
    """

    def __init__(self, directive: str) -> None:
        """
        Initialize the log.

        Args:
            directive: Fixed system-level instruction, stored as the first turn.

        Raises:
            ValueError: If the directive is blank.
        """
        directive = (directive or "").strip()
        if not directive:
            raise ValueError("directive must not be empty")
        self._turns: list[Turn] = [Turn(role=TurnRole.DIRECTIVE, text=directive)]
        self._listeners: list[TurnListener] = []

    @property
    def directive(self) -> Turn:
        """Get the seeded directive turn."""
        return self._turns[0]

    @property
    def turns(self) -> list[Turn]:
        """Get all turns, directive first."""
        return self._turns.copy()

    @property
    def visible_turns(self) -> list[Turn]:
        """Get human and machine turns, the ones a user sees."""
        return self._turns[1:]

    @property
    def last_turn(self) -> Turn:
        return self._turns[-1]

    def __len__(self) -> int:
        return len(self._turns)

    def append(self, role: TurnRole, text: str) -> Turn:
        """
        Append a new turn.

        Args:
            role: HUMAN or MACHINE. The directive cannot be appended again.
            text: Turn content; surrounding whitespace is stripped.

        Returns:
            The created Turn.

        Raises:
            ValueError: For a directive role or blank text.
        """
        if role is TurnRole.DIRECTIVE:
            raise ValueError("the directive is seeded once and cannot be appended")
        content = (text or "").strip()
        if not content:
            raise ValueError("turn text must not be empty")

        turn = Turn(role=role, text=content)
        self._turns.append(turn)
        logger.debug(f"Appended {role.value} turn {turn.turn_id} ({len(content)} chars)")

        for listener in list(self._listeners):
            try:
                listener(turn)
            except Exception:
                logger.exception("Conversation listener failed")
        return turn

    def history(self) -> list[WireMessage]:
        """Get the full history in the reply endpoint's wire format."""
        return [turn.to_wire() for turn in self._turns]

    def subscribe(self, listener: TurnListener) -> Callable[[], None]:
        """
        Be told about every appended turn.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
