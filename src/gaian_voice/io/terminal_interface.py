"""
Terminal interface.

A small REPL over the turn coordinator: typed lines are submitted as human
turns, slash commands drive continuous mode and push-to-talk recording, and
turns and mode changes are printed as they happen.
"""

from __future__ import annotations

import asyncio
import logging

from gaian_voice.conversation.log import ConversationLog
from gaian_voice.conversation.schemas import Turn, TurnRole
from gaian_voice.coordinator.modes import Mode
from gaian_voice.coordinator.turn_coordinator import TurnCoordinator, ViewState
from gaian_voice.exceptions import CoordinatorError

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /loop   toggle continuous voice mode
  /rec    start or stop push-to-talk recording
  /edit   replace the input text, e.g. to correct a transcript
  /send   submit the transcribed input text
  /help   show this help
  /quit   leave
Any other line is sent as a message."""

_SPEAKERS = {TurnRole.HUMAN: "You", TurnRole.MACHINE: "Gaian"}


class TerminalInterface:
    """Command-line front end for a TurnCoordinator."""

    def __init__(self, coordinator: TurnCoordinator, log: ConversationLog) -> None:
        self._coordinator = coordinator
        self._log = log
        self._last_view: ViewState | None = None

    async def run(self) -> None:
        """Run the interactive session until /quit or end of input."""
        print("\n" + "=" * 60)
        print("Gaian voice chat")
        print("=" * 60)
        print(HELP_TEXT + "\n")

        unsubscribe_log = self._log.subscribe(self._show_turn)
        remove_view = self._coordinator.add_view_listener(self._show_view)
        try:
            while True:
                line = (await self._get_input("> ")).strip()
                if not line:
                    continue
                if line == "/quit":
                    break
                await self.handle_line(line)
        finally:
            unsubscribe_log()
            remove_view()

    async def handle_line(self, line: str) -> None:
        """Apply one line of user input."""
        try:
            if line == "/help":
                print(HELP_TEXT)
            elif line == "/loop":
                enabled = await self._coordinator.set_continuous(not self._coordinator.continuous)
                print(f"Continuous mode {'on' if enabled else 'off'}")
            elif line == "/rec":
                if self._coordinator.mode is Mode.MANUAL_RECORDING:
                    print("Transcribing...")
                    await self._coordinator.stop_manual_recording()
                else:
                    await self._coordinator.start_manual_recording()
                    if self._coordinator.mode is Mode.MANUAL_RECORDING:
                        print("Recording... type /rec again to stop")
            elif line == "/edit" or line.startswith("/edit "):
                self._coordinator.set_input_text(line[len("/edit"):].strip())
            elif line == "/send":
                self._coordinator.submit()
            else:
                self._coordinator.submit(line)
        except CoordinatorError as e:
            print(f"! {e}")

    def _show_turn(self, turn: Turn) -> None:
        speaker = _SPEAKERS.get(turn.role)
        if speaker is None:
            return
        print(f"\n{speaker}: {turn.text}\n")

    def _show_view(self, view: ViewState) -> None:
        last = self._last_view
        self._last_view = view

        if last is None or view.mode != last.mode:
            logger.debug(f"Mode: {view.mode.value}")
            if view.mode is Mode.CAPTURING:
                print("[listening]")
            elif view.mode is Mode.AWAITING_REPLY:
                print("[thinking]")
            elif view.mode is Mode.SPEAKING:
                print("[speaking]")
        if view.pending_transcript and (last is None or view.pending_transcript != last.pending_transcript):
            print(f"... {view.pending_transcript}")
        if view.input_text and not view.continuous and (last is None or view.input_text != last.input_text):
            print(f"Input: {view.input_text}  (/send to submit)")
        if view.last_error and (last is None or view.last_error != last.last_error):
            print(f"! {view.last_error}")

    async def _get_input(self, prompt: str) -> str:
        try:
            return await asyncio.to_thread(input, prompt)
        except EOFError:
            return "/quit"
