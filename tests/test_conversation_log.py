"""
Tests for the conversation log and turn schemas.
"""

import pytest
from pydantic import ValidationError

from gaian_voice.config import DEFAULT_DIRECTIVE
from gaian_voice.conversation import ConversationLog, Turn, TurnRole


class TestConversationLog:
    """Tests for ConversationLog."""

    @pytest.fixture
    def log(self) -> ConversationLog:
        return ConversationLog("You are Gaian.")

    def test_directive_is_seeded_first(self, log: ConversationLog) -> None:
        assert len(log) == 1
        assert log.directive.role == TurnRole.DIRECTIVE
        assert log.directive.text == "You are Gaian."
        assert log.visible_turns == []

    def test_blank_directive_rejected(self) -> None:
        with pytest.raises(ValueError):
            ConversationLog("   ")

    def test_default_directive_is_usable(self) -> None:
        log = ConversationLog(DEFAULT_DIRECTIVE)
        assert "Gaian" in log.directive.text

    def test_append_keeps_order_and_strips(self, log: ConversationLog) -> None:
        first = log.append(TurnRole.HUMAN, "  hello  ")
        second = log.append(TurnRole.MACHINE, "hi there")

        assert first.text == "hello"
        assert [t.turn_id for t in log.visible_turns] == [first.turn_id, second.turn_id]
        assert log.last_turn is second
        assert first.turn_id != second.turn_id

    def test_directive_cannot_be_appended(self, log: ConversationLog) -> None:
        with pytest.raises(ValueError):
            log.append(TurnRole.DIRECTIVE, "new rules")
        assert len(log) == 1

    def test_blank_turn_rejected(self, log: ConversationLog) -> None:
        with pytest.raises(ValueError):
            log.append(TurnRole.HUMAN, " \n ")

    def test_turns_returns_a_copy(self, log: ConversationLog) -> None:
        turns = log.turns
        turns.clear()
        assert len(log) == 1

    def test_turns_are_immutable(self, log: ConversationLog) -> None:
        turn = log.append(TurnRole.HUMAN, "hello")
        with pytest.raises(ValidationError):
            turn.text = "changed"  # type: ignore[misc]

    def test_history_maps_roles_to_wire_format(self, log: ConversationLog) -> None:
        log.append(TurnRole.HUMAN, "What is symbiosis?")
        log.append(TurnRole.MACHINE, "Living together.")

        history = [m.model_dump() for m in log.history()]
        assert history == [
            {"role": "system", "content": "You are Gaian."},
            {"role": "user", "content": "What is symbiosis?"},
            {"role": "assistant", "content": "Living together."},
        ]

    def test_subscribe_and_unsubscribe(self, log: ConversationLog) -> None:
        seen: list[Turn] = []
        unsubscribe = log.subscribe(seen.append)

        log.append(TurnRole.HUMAN, "one")
        unsubscribe()
        log.append(TurnRole.HUMAN, "two")

        assert [t.text for t in seen] == ["one"]

    def test_failing_listener_does_not_break_append(self, log: ConversationLog) -> None:
        def boom(turn: Turn) -> None:
            raise RuntimeError("listener failed")

        seen: list[Turn] = []
        log.subscribe(boom)
        log.subscribe(seen.append)

        turn = log.append(TurnRole.HUMAN, "still works")

        assert log.last_turn is turn
        assert seen == [turn]
