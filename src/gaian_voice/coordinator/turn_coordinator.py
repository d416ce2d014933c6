"""Turn-taking coordinator.

Arbitrates between continuous capture, push-to-talk recording, reply
retrieval and synthesized playback so that the microphone and the
loudspeaker are never active together, and so that continuous mode returns
to listening after every machine turn.

All state lives on this object and is only touched from the event loop:
device adapters deliver their events through the loop, gateway calls run as
tasks whose results re-enter through ``_on_*_done`` and timers are
``loop.call_later`` handles.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict

from gaian_voice.config import DEFAULT_APOLOGY, Settings, get_settings
from gaian_voice.conversation.log import ConversationLog
from gaian_voice.conversation.schemas import Turn, TurnRole
from gaian_voice.coordinator.modes import (
    LISTENING_MODES,
    SUBMIT_MODES,
    Mode,
    RequestHandle,
    RequestKind,
    is_legal,
)
from gaian_voice.exceptions import DeviceError, GatewayError, InvalidTransitionError, TurnRejectedError
from gaian_voice.gateway.remote_gateway import RemoteGatewayBase
from gaian_voice.voice.capture import CaptureErrorKind, CaptureEvent, CaptureEventType, CaptureSource
from gaian_voice.voice.playback import PlaybackEvent, PlaybackEventType, PlaybackSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoordinatorConfig:
    rearm_delay_s: float = 0.5
    recovery_rearm_delay_s: float = 0.1
    submit_settle_delay_s: float = 0.5
    capture_error_rearm_delay_s: float = 0.5
    apology_text: str = DEFAULT_APOLOGY

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CoordinatorConfig:
        settings = settings or get_settings()
        return cls(
            rearm_delay_s=settings.rearm_delay_s,
            recovery_rearm_delay_s=settings.recovery_rearm_delay_s,
            submit_settle_delay_s=settings.submit_settle_delay_s,
            capture_error_rearm_delay_s=settings.capture_error_rearm_delay_s,
            apology_text=settings.apology_text,
        )


class ViewState(BaseModel):
    """Snapshot pushed to the presentation layer after every change."""

    model_config = ConfigDict(frozen=True)

    mode: Mode
    continuous: bool
    pending_transcript: str = ""
    input_text: str = ""
    can_submit: bool = False
    is_transcribing: bool = False
    last_error: str | None = None


ViewListener = Callable[[ViewState], None]


class TurnCoordinator:
    def __init__(
        self,
        *,
        capture: CaptureSource,
        playback: PlaybackSink,
        gateway: RemoteGatewayBase,
        log: ConversationLog,
        config: CoordinatorConfig | None = None,
    ) -> None:
        self._capture = capture
        self._playback = playback
        self._gateway = gateway
        self._log = log
        self._config = config or CoordinatorConfig()

        self._mode = Mode.IDLE
        self._continuous = False
        self._pending_transcript = ""
        self._input_text = ""
        self._last_error: str | None = None
        self._recorder_pending = False
        self._toggle_serial = 0

        self._serials = itertools.count(1)
        self._outstanding: dict[RequestKind, RequestHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._rearm_timer: asyncio.TimerHandle | None = None
        self._settle_timer: asyncio.TimerHandle | None = None

        self._view_listeners: list[ViewListener] = []
        self._mode_waiters: list[tuple[frozenset[Mode], asyncio.Future]] = []

        capture.subscribe(self._on_capture_event)
        playback.subscribe(self._on_playback_event)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def continuous(self) -> bool:
        return self._continuous

    @property
    def pending_transcript(self) -> str:
        return self._pending_transcript

    @property
    def input_text(self) -> str:
        return self._input_text

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_transcribing(self) -> bool:
        return RequestKind.TRANSCRIPTION in self._outstanding

    @property
    def can_submit(self) -> bool:
        return self._mode in SUBMIT_MODES and not self.is_transcribing and bool(self._input_text.strip())

    @property
    def outstanding(self) -> dict[RequestKind, RequestHandle]:
        return dict(self._outstanding)

    def snapshot(self) -> ViewState:
        return ViewState(
            mode=self._mode,
            continuous=self._continuous,
            pending_transcript=self._pending_transcript,
            input_text=self._input_text,
            can_submit=self.can_submit,
            is_transcribing=self.is_transcribing,
            last_error=self._last_error,
        )

    def add_view_listener(self, listener: ViewListener) -> Callable[[], None]:
        """Register a presentation listener; returns a callable that removes it."""
        self._view_listeners.append(listener)

        def _remove() -> None:
            if listener in self._view_listeners:
                self._view_listeners.remove(listener)

        return _remove

    async def wait_for_mode(self, *modes: Mode, timeout: float | None = None) -> Mode:
        """Wait until the coordinator enters one of ``modes``."""
        if self._mode in modes:
            return self._mode
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        entry = (frozenset(modes), fut)
        self._mode_waiters.append(entry)
        try:
            return await asyncio.wait_for(fut, timeout)
        finally:
            if entry in self._mode_waiters:
                self._mode_waiters.remove(entry)

    # ------------------------------------------------------------------
    # User commands
    # ------------------------------------------------------------------

    async def set_continuous(self, enabled: bool) -> bool:
        """
        Toggle continuous mode.

        Turning it on first checks microphone access; on failure the flag stays
        off and ``last_error`` explains why. Turning it off stops capture and
        clears any transcript, but lets in-flight requests finish.

        Returns:
            The flag's value after the call.

        Raises:
            TurnRejectedError: When turning on during push-to-talk recording.
        """
        if not enabled:
            self._disable_continuous()
            return False

        if self._continuous:
            return True
        if self._mode is Mode.MANUAL_RECORDING:
            raise TurnRejectedError("Stop the recording before enabling continuous mode")

        toggle = self._toggle_serial
        try:
            await self._capture.request_permission()
        except DeviceError as e:
            logger.warning(f"[VOICE][COORD] microphone unavailable: {e}")
            self._last_error = "Please allow microphone access to use speech recognition"
            self._publish()
            return False

        if toggle != self._toggle_serial:
            logger.debug("[VOICE][COORD] continuous mode switched off during permission check")
            return False
        if self._continuous:
            return True
        if self._mode is Mode.MANUAL_RECORDING:
            raise TurnRejectedError("Stop the recording before enabling continuous mode")

        self._continuous = True
        self._last_error = None
        logger.info("[VOICE][COORD] continuous mode on")
        if self._mode is Mode.IDLE:
            self._arm(0.0, "continuous mode on")
        else:
            self._publish()
        return True

    def _disable_continuous(self) -> None:
        was_on = self._continuous
        self._continuous = False
        self._toggle_serial += 1
        self._cancel_rearm()
        self._capture.stop()
        self._pending_transcript = ""
        self._input_text = ""
        if was_on:
            logger.info("[VOICE][COORD] continuous mode off")
        if self._mode in LISTENING_MODES:
            self._enter(Mode.IDLE, "continuous mode off")
        else:
            self._publish()

    def set_input_text(self, text: str) -> None:
        self._input_text = text or ""
        self._publish()

    def submit(self, text: str | None = None) -> Turn:
        """
        Submit typed (or previously transcribed) text as a human turn.

        Args:
            text: Text to send. Defaults to the current input text.

        Returns:
            The appended human Turn.

        Raises:
            TurnRejectedError: If the mode, an in-flight transcription or an
                empty text does not allow submitting.
        """
        content = (self._input_text if text is None else text).strip()
        if self._mode not in SUBMIT_MODES:
            raise TurnRejectedError(f"Cannot submit while {self._mode.value}")
        if self.is_transcribing:
            raise TurnRejectedError("Cannot submit while a transcription is in progress")
        if not content:
            raise TurnRejectedError("Cannot submit empty text")

        if self._mode in LISTENING_MODES:
            self._cancel_rearm()
            self._capture.stop()
        self._enter(Mode.AWAITING_REPLY, "manual submit")
        return self._begin_reply(content)

    async def start_manual_recording(self) -> None:
        """Begin push-to-talk recording. Only allowed from Idle with continuous mode off."""
        if self._continuous:
            raise TurnRejectedError("Push-to-talk is unavailable in continuous mode")
        if self._mode is not Mode.IDLE:
            raise TurnRejectedError(f"Cannot record while {self._mode.value}")
        if self.is_transcribing:
            raise TurnRejectedError("Cannot record while a transcription is in progress")

        self._enter(Mode.MANUAL_RECORDING, "push-to-talk")
        self._recorder_pending = True
        try:
            await self._capture.start_manual_recording()
        except DeviceError as e:
            logger.warning(f"[VOICE][COORD] could not start recording: {e}")
            self._last_error = f"Error accessing microphone: {e}"
            if self._mode is Mode.MANUAL_RECORDING:
                self._enter(Mode.IDLE, "recording failed")
            else:
                self._publish()
            return
        finally:
            self._recorder_pending = False

        if self._mode is not Mode.MANUAL_RECORDING:
            # Closed while the microphone was opening.
            logger.info("[VOICE][COORD] recording started after leaving push-to-talk, discarding it")
            await self._capture.stop_manual_recording()

    async def stop_manual_recording(self) -> None:
        """Stop push-to-talk recording and transcribe what was captured."""
        if self._mode is not Mode.MANUAL_RECORDING:
            raise TurnRejectedError("Not recording")
        if self._recorder_pending:
            raise TurnRejectedError("Recording is still starting or stopping")

        self._recorder_pending = True
        try:
            audio = await self._capture.stop_manual_recording()
        except DeviceError as e:
            logger.warning(f"[VOICE][COORD] could not stop recording: {e}")
            audio = b""
        finally:
            self._recorder_pending = False
        if self._mode is not Mode.MANUAL_RECORDING:
            logger.debug("[VOICE][COORD] recording stopped after leaving push-to-talk")
            return
        self._enter(Mode.IDLE, "recording stopped")

        if not audio:
            self._last_error = "No audio was recorded"
            self._publish()
            return

        handle = self._issue(RequestKind.TRANSCRIPTION)
        self._spawn(self._request_transcription(handle, audio))
        self._publish()

    def dismiss_error(self) -> None:
        self._last_error = None
        self._publish()

    async def close(self) -> None:
        """Stop both devices, drop in-flight work and close the gateway."""
        self._continuous = False
        self._toggle_serial += 1
        self._cancel_rearm()
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None
        self._outstanding.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._capture.stop()
        if self._capture.is_recording:
            await self._capture.stop_manual_recording()
        self._playback.stop()
        self._enter(Mode.IDLE, "closed")

        for _, fut in self._mode_waiters:
            if not fut.done():
                fut.cancel()
        await self._gateway.close()

    # ------------------------------------------------------------------
    # Device events
    # ------------------------------------------------------------------

    def _on_capture_event(self, event: CaptureEvent) -> None:
        mode = self._mode

        if event.type is CaptureEventType.STARTED:
            if mode in (Mode.IDLE, Mode.ARMED_LISTENING):
                self._enter(Mode.CAPTURING, "capture started")
                return

        elif event.type is CaptureEventType.INTERIM:
            if mode is Mode.CAPTURING:
                self._pending_transcript = event.text
                self._publish()
                return

        elif event.type is CaptureEventType.FINAL:
            if mode is Mode.CAPTURING:
                self._on_final_transcript(event.text)
                return

        elif event.type is CaptureEventType.ENDED:
            if mode in LISTENING_MODES:
                self._after_listening(self._config.rearm_delay_s, "capture ended")
                return

        elif event.type is CaptureEventType.ERROR:
            if mode in LISTENING_MODES:
                self._on_capture_error(event)
                return

        logger.debug(f"[VOICE][COORD] ignoring capture {event.type.value} while {mode.value}")

    def _on_final_transcript(self, text: str) -> None:
        self._pending_transcript = text
        self._input_text = text
        if not self._continuous:
            self._publish()
            return

        self._capture.stop()
        self._enter(Mode.AWAITING_REPLY, "final transcript")
        loop = asyncio.get_running_loop()
        self._settle_timer = loop.call_later(self._config.submit_settle_delay_s, self._settle_submit, text)

    def _settle_submit(self, text: str) -> None:
        self._settle_timer = None
        if self._mode is not Mode.AWAITING_REPLY:
            logger.debug(f"[VOICE][COORD] dropping settled transcript while {self._mode.value}")
            return
        self._begin_reply(text)

    def _on_capture_error(self, event: CaptureEvent) -> None:
        logger.warning(f"[VOICE][COORD] capture error ({event.error.value if event.error else 'unknown'}): {event.detail}")
        self._pending_transcript = ""
        if event.error is CaptureErrorKind.PERMISSION_DENIED:
            self._continuous = False
            self._cancel_rearm()
            self._last_error = "Please allow microphone access to use speech recognition"
            self._enter(Mode.IDLE, "microphone permission denied")
            return
        self._after_listening(self._config.capture_error_rearm_delay_s, "capture error")

    def _after_listening(self, delay: float, reason: str) -> None:
        if self._continuous:
            self._arm(delay, reason)
        else:
            self._cancel_rearm()
            self._enter(Mode.IDLE, reason)

    def _on_playback_event(self, event: PlaybackEvent) -> None:
        if self._mode is not Mode.SPEAKING:
            logger.debug(f"[VOICE][COORD] ignoring playback {event.type.value} while {self._mode.value}")
            return
        if event.type is PlaybackEventType.ENDED:
            self._after_machine_turn(self._config.rearm_delay_s, "playback ended")
        elif event.type is PlaybackEventType.ERROR:
            logger.warning(f"[VOICE][COORD] playback error: {event.detail}")
            self._after_machine_turn(self._config.recovery_rearm_delay_s, "playback error")

    def _after_machine_turn(self, delay: float, reason: str) -> None:
        if self._continuous:
            self._arm(delay, reason)
        else:
            self._enter(Mode.IDLE, reason)

    # ------------------------------------------------------------------
    # Gateway calls
    # ------------------------------------------------------------------

    def _begin_reply(self, text: str) -> Turn:
        turn = self._log.append(TurnRole.HUMAN, text)
        self._pending_transcript = ""
        self._input_text = ""
        handle = self._issue(RequestKind.REPLY)
        self._spawn(self._request_reply(handle))
        self._publish()
        return turn

    async def _request_reply(self, handle: RequestHandle) -> None:
        history = self._log.history()
        try:
            reply = await self._gateway.get_reply(history)
        except GatewayError as e:
            logger.warning(f"[VOICE][COORD] reply failed: {e.cause}")
            reply = None
        except Exception:
            logger.exception("Unexpected error while getting a reply")
            reply = None
        self._on_reply_done(handle, reply)

    def _on_reply_done(self, handle: RequestHandle, reply: str | None) -> None:
        if not self._retire(handle):
            return

        text = reply if reply and reply.strip() else self._config.apology_text
        self._log.append(TurnRole.MACHINE, text)

        if not self._continuous:
            self._enter(Mode.IDLE, "reply received")
            return

        self._enter(Mode.SYNTHESIZING, "reply received")
        synthesis = self._issue(RequestKind.SYNTHESIS)
        self._spawn(self._request_synthesis(synthesis, text))

    async def _request_synthesis(self, handle: RequestHandle, text: str) -> None:
        try:
            audio = await self._gateway.synthesize(text)
        except GatewayError as e:
            logger.warning(f"[VOICE][COORD] synthesis failed, reply stays as text: {e.cause}")
            audio = None
        except Exception:
            logger.exception("Unexpected error while synthesizing speech")
            audio = None
        self._on_synthesis_done(handle, audio)

    def _on_synthesis_done(self, handle: RequestHandle, audio: bytes | None) -> None:
        if not self._retire(handle):
            return
        if not audio:
            self._after_machine_turn(self._config.recovery_rearm_delay_s, "synthesis failed")
            return

        self._enter(Mode.SPEAKING, "speech synthesized")
        try:
            self._playback.play(audio)
        except DeviceError as e:
            logger.warning(f"[VOICE][COORD] playback could not start: {e}")
            self._after_machine_turn(self._config.recovery_rearm_delay_s, "playback failed")

    async def _request_transcription(self, handle: RequestHandle, audio: bytes) -> None:
        try:
            text = await self._gateway.transcribe(audio)
        except GatewayError as e:
            logger.warning(f"[VOICE][COORD] transcription failed: {e.cause}")
            self._on_transcription_done(handle, None, e.cause)
            return
        except Exception as e:
            logger.exception("Unexpected error while transcribing audio")
            self._on_transcription_done(handle, None, str(e))
            return
        self._on_transcription_done(handle, text, None)

    def _on_transcription_done(self, handle: RequestHandle, text: str | None, error: str | None) -> None:
        if not self._retire(handle):
            return
        if text is None:
            self._last_error = f"Error transcribing audio: {error}"
        else:
            self._input_text = text.strip()
        self._publish()

    def _issue(self, kind: RequestKind) -> RequestHandle:
        previous = self._outstanding.get(kind)
        if previous is not None:
            logger.warning(f"[VOICE][COORD] superseding outstanding {kind.value} request #{previous.serial}")
        handle = RequestHandle(kind=kind, serial=next(self._serials))
        self._outstanding[kind] = handle
        logger.debug(f"[VOICE][COORD] issued {kind.value} request #{handle.serial}")
        return handle

    def _retire(self, handle: RequestHandle) -> bool:
        """Clear ``handle`` if it is still the outstanding one of its kind."""
        if self._outstanding.get(handle.kind) != handle:
            logger.debug(f"[VOICE][COORD] discarding stale {handle.kind.value} result #{handle.serial}")
            return False
        del self._outstanding[handle.kind]
        return True

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Modes and timers
    # ------------------------------------------------------------------

    def _enter(self, mode: Mode, reason: str) -> None:
        old = self._mode
        if mode == old:
            return
        if not is_legal(old, mode):
            raise InvalidTransitionError(f"{old.value} -> {mode.value} ({reason})")
        self._mode = mode
        logger.info(f"[VOICE][COORD] {old.value} -> {mode.value} ({reason})")

        for modes, fut in list(self._mode_waiters):
            if mode in modes and not fut.done():
                fut.set_result(mode)
        self._publish()

    def _arm(self, delay: float, reason: str) -> None:
        self._cancel_rearm()
        self._enter(Mode.ARMED_LISTENING, reason)
        loop = asyncio.get_running_loop()
        self._rearm_timer = loop.call_later(max(0.0, delay), self._fire_rearm)

    def _cancel_rearm(self) -> None:
        if self._rearm_timer is not None:
            self._rearm_timer.cancel()
            self._rearm_timer = None

    def _fire_rearm(self) -> None:
        self._rearm_timer = None
        if self._mode is not Mode.ARMED_LISTENING or not self._continuous:
            logger.debug(f"[VOICE][COORD] re-arm skipped while {self._mode.value}")
            return
        if self._capture.is_active:
            logger.debug("[VOICE][COORD] re-arm skipped, capture already active")
            return
        try:
            self._capture.start_continuous()
        except DeviceError as e:
            self._on_capture_error(
                CaptureEvent(CaptureEventType.ERROR, error=CaptureErrorKind.AUDIO_DEVICE, detail=str(e))
            )

    def _publish(self) -> None:
        if not self._view_listeners:
            return
        view = self.snapshot()
        for listener in list(self._view_listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("View listener failed")
