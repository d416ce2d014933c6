"""Playback sink for synthesized speech clips.

- ``play()`` while a clip is playing raises PlaybackBusyError.
- ``stop()`` when idle is a no-op; otherwise it aborts playback and reports
  ``ended`` (asynchronously, like every other event).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from gaian_voice.exceptions import DeviceError, PlaybackBusyError
from gaian_voice.voice.audio_io import AudioIO
from gaian_voice.voice.events import EventSource

logger = logging.getLogger(__name__)


class PlaybackEventType(str, Enum):
    STARTED = "started"
    ENDED = "ended"
    ERROR = "error"


@dataclass(frozen=True)
class PlaybackEvent:
    type: PlaybackEventType
    detail: str = ""


class PlaybackSink(EventSource[PlaybackEvent], ABC):
    def __init__(self) -> None:
        super().__init__()
        self._playing = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play(self, audio: bytes) -> None:
        if self._playing:
            raise PlaybackBusyError("a clip is already playing")
        self._bind_loop()
        session = self._next_session()
        self._playing = True
        logger.info(f"[VOICE][PLAYBACK] playing clip ({len(audio)} bytes)")
        self._start_playback(audio, session)

    def stop(self) -> None:
        if not self._playing:
            return
        self._playing = False
        self._next_session()
        self._stop_playback()
        logger.info("[VOICE][PLAYBACK] playback aborted")
        self._emit(PlaybackEvent(PlaybackEventType.ENDED))

    def _on_event(self, event: PlaybackEvent) -> None:
        if event.type in (PlaybackEventType.ENDED, PlaybackEventType.ERROR):
            self._playing = False

    @abstractmethod
    def _start_playback(self, audio: bytes, session: int) -> None: ...

    @abstractmethod
    def _stop_playback(self) -> None: ...


class SpeakerPlayback(PlaybackSink):
    """Decodes a clip with soundfile and plays it through sounddevice."""

    def __init__(self, audio: AudioIO | None = None) -> None:
        super().__init__()
        self._audio = audio or AudioIO()
        self._task: asyncio.Task | None = None

    def _start_playback(self, audio: bytes, session: int) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(audio, session))

    def _stop_playback(self) -> None:
        self._audio.stop_playback()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, clip: bytes, session: int) -> None:
        try:
            samples, sample_rate = await asyncio.to_thread(self._audio.decode_clip, clip)
            self._emit(PlaybackEvent(PlaybackEventType.STARTED), session)
            await asyncio.to_thread(self._audio.play_samples, samples, sample_rate)
        except DeviceError as e:
            logger.warning(f"[VOICE][PLAYBACK] {e}")
            self._emit(PlaybackEvent(PlaybackEventType.ERROR, detail=str(e)), session)
            return
        self._emit(PlaybackEvent(PlaybackEventType.ENDED), session)
