"""Capture source: continuous recognition and push-to-talk recording.

The coordinator is the single authority that commands this adapter; it is
also its only subscriber. Contract:

- ``start_continuous()`` while listening or recording raises CaptureBusyError.
- ``stop()`` when not listening is a no-op and emits nothing.
- ``start_manual_recording()`` / ``stop_manual_recording()`` share the same
  microphone and are mutually exclusive with continuous recognition.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import numpy as np

from gaian_voice.exceptions import CaptureBusyError, DeviceError, MicrophonePermissionError, RecognitionEngineError
from gaian_voice.voice.audio_io import AudioIO, frame_rms
from gaian_voice.voice.events import EventSource
from gaian_voice.voice.stt import SpeechRecognizer, WhisperRecognizer

logger = logging.getLogger(__name__)


class CaptureEventType(str, Enum):
    STARTED = "started"
    INTERIM = "interim"
    FINAL = "final"
    ERROR = "error"
    ENDED = "ended"


class CaptureErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    AUDIO_DEVICE = "audio_device"
    ENGINE = "engine"


@dataclass(frozen=True)
class CaptureEvent:
    type: CaptureEventType
    text: str = ""
    error: CaptureErrorKind | None = None
    detail: str = ""


class CaptureSource(EventSource[CaptureEvent], ABC):
    """Base adapter: enforces the start/stop contract and owns event delivery."""

    def __init__(self) -> None:
        super().__init__()
        self._listening = False
        self._recording = False

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def is_active(self) -> bool:
        return self._listening or self._recording

    def start_continuous(self) -> None:
        """Begin continuous recognition; ``started`` follows asynchronously."""
        if self.is_active:
            raise CaptureBusyError("capture is already active")
        self._bind_loop()
        session = self._next_session()
        self._listening = True
        logger.info(f"[VOICE][CAPTURE] continuous recognition requested (session {session})")
        try:
            self._start_recognition(session)
        except DeviceError:
            self._listening = False
            raise

    def stop(self) -> None:
        """Stop continuous recognition. No-op when not listening."""
        if not self._listening:
            return
        self._listening = False
        self._next_session()
        self._stop_recognition()
        logger.info("[VOICE][CAPTURE] continuous recognition stopped")
        self._emit(CaptureEvent(CaptureEventType.ENDED))

    async def start_manual_recording(self) -> None:
        if self.is_active:
            raise CaptureBusyError("capture is already active")
        self._bind_loop()
        await self._start_recording()
        self._recording = True
        logger.info("[VOICE][CAPTURE] push-to-talk recording started")

    async def stop_manual_recording(self) -> bytes:
        """Stop push-to-talk recording and return the WAV-encoded clip."""
        if not self._recording:
            return b""
        self._recording = False
        audio = await self._stop_recording()
        logger.info(f"[VOICE][CAPTURE] push-to-talk recording stopped ({len(audio)} bytes)")
        return audio

    def _on_event(self, event: CaptureEvent) -> None:
        if event.type in (CaptureEventType.ERROR, CaptureEventType.ENDED):
            self._listening = False

    @abstractmethod
    async def request_permission(self) -> None:
        """Raise MicrophonePermissionError if the microphone cannot be used."""

    @abstractmethod
    def _start_recognition(self, session: int) -> None: ...

    @abstractmethod
    def _stop_recognition(self) -> None: ...

    @abstractmethod
    async def _start_recording(self) -> None: ...

    @abstractmethod
    async def _stop_recording(self) -> bytes: ...


@dataclass(frozen=True)
class CaptureConfig:
    sample_rate: int = 16000
    speech_rms_threshold: float = 0.02
    silence_duration_s: float = 0.8
    interim_interval_s: float = 1.5
    max_utterance_s: float = 30.0
    max_queued_frames: int = 512


@dataclass(frozen=True)
class Segment:
    audio: np.ndarray
    final: bool


class UtteranceSegmenter:
    """Energy-gated utterance detection over a stream of PCM frames.

    Speech starts at the first frame above the RMS threshold. While speech is
    in progress a non-final segment is produced every ``interim_interval_s``;
    the utterance closes after ``silence_duration_s`` of quiet frames or at
    ``max_utterance_s``.
    """

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self._config = config or CaptureConfig()
        self.reset()

    @property
    def in_speech(self) -> bool:
        return self._in_speech

    def reset(self) -> None:
        self._frames: list[np.ndarray] = []
        self._in_speech = False
        self._speech_s = 0.0
        self._silence_s = 0.0
        self._since_interim_s = 0.0

    def feed(self, frame: np.ndarray) -> Segment | None:
        duration = frame.shape[0] / self._config.sample_rate
        loud = frame_rms(frame) >= self._config.speech_rms_threshold

        if not self._in_speech:
            if not loud:
                return None
            self._in_speech = True

        self._frames.append(frame)
        self._speech_s += duration
        self._since_interim_s += duration
        self._silence_s = 0.0 if loud else self._silence_s + duration

        if self._silence_s >= self._config.silence_duration_s or self._speech_s >= self._config.max_utterance_s:
            audio = np.concatenate(self._frames, axis=0)
            self.reset()
            return Segment(audio=audio, final=True)

        if self._since_interim_s >= self._config.interim_interval_s:
            self._since_interim_s = 0.0
            return Segment(audio=np.concatenate(self._frames, axis=0), final=False)

        return None


class MicrophoneCapture(CaptureSource):
    """Microphone-backed capture using sounddevice and a local recognizer."""

    def __init__(
        self,
        *,
        audio: AudioIO | None = None,
        recognizer: SpeechRecognizer | None = None,
        config: CaptureConfig | None = None,
    ) -> None:
        super().__init__()
        self._audio = audio or AudioIO()
        self._recognizer = recognizer or WhisperRecognizer()
        self._config = config or CaptureConfig(sample_rate=self._audio.config.sample_rate)
        self._task: asyncio.Task | None = None

    async def request_permission(self) -> None:
        await self._audio.probe_microphone()

    def _start_recognition(self, session: int) -> None:
        self._task = asyncio.get_running_loop().create_task(self._recognize(session))

    def _stop_recognition(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _start_recording(self) -> None:
        await self._audio.start_recording()

    async def _stop_recording(self) -> bytes:
        audio = await self._audio.stop_recording()
        if audio.size == 0:
            return b""
        return self._audio.encode_wav(audio)

    async def _recognize(self, session: int) -> None:
        loop = asyncio.get_running_loop()
        frames: asyncio.Queue[np.ndarray] = asyncio.Queue(maxsize=self._config.max_queued_frames)

        def _enqueue(frame: np.ndarray) -> None:
            if frames.full():
                logger.debug("[VOICE][CAPTURE] frame queue full, dropping frame")
                return
            frames.put_nowait(frame)

        def callback(indata, frame_count, time_info, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            loop.call_soon_threadsafe(_enqueue, indata.copy())

        try:
            stream = await self._audio.open_input_stream(callback)
        except MicrophonePermissionError as e:
            self._emit(_error(CaptureErrorKind.PERMISSION_DENIED, e), session)
            return
        except DeviceError as e:
            self._emit(_error(CaptureErrorKind.AUDIO_DEVICE, e), session)
            return
        except Exception as e:
            logger.exception("Could not open the input stream")
            self._emit(_error(CaptureErrorKind.AUDIO_DEVICE, e), session)
            return

        segmenter = UtteranceSegmenter(self._config)
        try:
            self._emit(CaptureEvent(CaptureEventType.STARTED), session)
            while True:
                segment = segmenter.feed(await frames.get())
                if segment is None:
                    continue
                result = await self._recognizer.transcribe_array(segment.audio)
                text = result.text.strip()
                if not text:
                    continue
                kind = CaptureEventType.FINAL if segment.final else CaptureEventType.INTERIM
                logger.debug(f"[VOICE][CAPTURE] {kind.value}: {text[:80]!r}")
                self._emit(CaptureEvent(kind, text=text), session)
        except RecognitionEngineError as e:
            logger.warning(f"[VOICE][CAPTURE] recognizer failed: {e}")
            self._emit(_error(CaptureErrorKind.ENGINE, e), session)
        except Exception as e:
            logger.exception("Capture worker failed")
            self._emit(_error(CaptureErrorKind.ENGINE, e), session)
        finally:
            await self._audio.close_stream(stream)


def _error(kind: CaptureErrorKind, exc: Exception) -> CaptureEvent:
    return CaptureEvent(CaptureEventType.ERROR, error=kind, detail=str(exc))
