import asyncio

import pytest

from gaian_voice.conversation import ConversationLog
from gaian_voice.coordinator import CoordinatorConfig, Mode, TurnCoordinator
from gaian_voice.gateway import RemoteGatewayBase
from gaian_voice.io import TerminalInterface
from gaian_voice.voice.capture import CaptureSource
from gaian_voice.voice.playback import PlaybackSink


class SilentCapture(CaptureSource):
    async def request_permission(self) -> None:
        return None

    def _start_recognition(self, session: int) -> None:
        return None

    def _stop_recognition(self) -> None:
        return None

    async def _start_recording(self) -> None:
        return None

    async def _stop_recording(self) -> bytes:
        return b"RIFFclip"


class SilentPlayback(PlaybackSink):
    def _start_playback(self, audio: bytes, session: int) -> None:
        return None

    def _stop_playback(self) -> None:
        return None


class EchoGateway(RemoteGatewayBase):
    async def get_reply(self, history) -> str:
        return f"echo: {history[-1].content}"

    async def synthesize(self, text: str) -> bytes:
        return b"ID3"

    async def transcribe(self, audio: bytes) -> str:
        return "spoken words"


@pytest.fixture
def session():
    log = ConversationLog("You are Gaian.")
    coordinator = TurnCoordinator(
        capture=SilentCapture(),
        playback=SilentPlayback(),
        gateway=EchoGateway(),
        log=log,
        config=CoordinatorConfig(rearm_delay_s=0.01, recovery_rearm_delay_s=0.01, submit_settle_delay_s=0.01),
    )
    return coordinator, log, TerminalInterface(coordinator, log)


@pytest.mark.asyncio
async def test_typed_line_is_submitted(session):
    coordinator, log, interface = session

    await interface.handle_line("hello there")
    await coordinator.wait_for_mode(Mode.IDLE, timeout=1.0)

    assert [t.text for t in log.visible_turns] == ["hello there", "echo: hello there"]


@pytest.mark.asyncio
async def test_record_then_send(session, capsys):
    coordinator, log, interface = session

    await interface.handle_line("/rec")
    assert coordinator.mode is Mode.MANUAL_RECORDING
    await interface.handle_line("/rec")
    for _ in range(100):
        if coordinator.input_text:
            break
        await asyncio.sleep(0.001)
    assert coordinator.input_text == "spoken words"

    await interface.handle_line("/send")
    await coordinator.wait_for_mode(Mode.IDLE, timeout=1.0)
    assert log.visible_turns[0].text == "spoken words"


@pytest.mark.asyncio
async def test_loop_toggles_continuous_mode(session, capsys):
    coordinator, _, interface = session

    await interface.handle_line("/loop")
    assert coordinator.continuous is True
    await interface.handle_line("/loop")
    assert coordinator.continuous is False

    out = capsys.readouterr().out
    assert "Continuous mode on" in out
    assert "Continuous mode off" in out


@pytest.mark.asyncio
async def test_rejected_command_is_reported(session, capsys):
    _, _, interface = session

    await interface.handle_line("/send")

    assert "Cannot submit empty text" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_prints_turns_until_quit(session, capsys, monkeypatch):
    coordinator, log, interface = session
    lines = iter(["hi", "/quit"])

    def fake_input(prompt: str = "") -> str:
        return next(lines)

    monkeypatch.setattr("builtins.input", fake_input)

    await interface.run()
    await coordinator.wait_for_mode(Mode.IDLE, timeout=1.0)

    out = capsys.readouterr().out
    assert "You: hi" in out
    assert len(log.visible_turns) == 2


@pytest.mark.asyncio
async def test_edit_replaces_input_before_send(session):
    coordinator, log, interface = session

    await interface.handle_line("/edit what is symbiosis?")
    assert coordinator.input_text == "what is symbiosis?"
    assert coordinator.can_submit

    await interface.handle_line("/send")
    await coordinator.wait_for_mode(Mode.IDLE, timeout=1.0)

    assert [t.text for t in log.visible_turns] == ["what is symbiosis?", "echo: what is symbiosis?"]
    assert coordinator.input_text == ""
