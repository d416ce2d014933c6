"""Audio capture + playback primitives (dialogue-agnostic).

This module is intentionally "dumb hardware I/O": it knows nothing about
turns, modes or the remote services.

It provides:
- a microphone probe (the permission precondition of continuous mode)
- streaming microphone input for continuous recognition
- push-to-talk microphone capture (start/stop)
- WAV encoding and clip decoding helpers
- speaker playback and abort
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from gaian_voice.exceptions import AudioBackendUnavailableError, DeviceError, MicrophonePermissionError

logger = logging.getLogger(__name__)

InputCallback = Callable[[np.ndarray, int, Any, Any], None]


@dataclass(frozen=True)
class AudioIOConfig:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"  # sounddevice dtype and WAV sample width
    block_duration_s: float = 0.03

    @property
    def block_size(self) -> int:
        return max(1, int(self.sample_rate * self.block_duration_s))


def frame_rms(frame: np.ndarray) -> float:
    """Root-mean-square level of an int16 or float frame, normalized to 0..1."""
    if frame.size == 0:
        return 0.0
    samples = frame.astype(np.float32)
    if np.issubdtype(frame.dtype, np.integer):
        samples = samples / 32768.0
    return float(np.sqrt(np.mean(np.square(samples))))


class AudioIO:
    def __init__(self, config: AudioIOConfig | None = None) -> None:
        self._config = config or AudioIOConfig()
        self._recording_stream = None
        self._recording_frames: list[np.ndarray] = []

    @property
    def config(self) -> AudioIOConfig:
        return self._config

    @property
    def is_recording(self) -> bool:
        return self._recording_stream is not None

    def _require_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception as e:  # pragma: no cover
            raise AudioBackendUnavailableError(
                "sounddevice is required for voice mode. Install Python deps with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e

    def _require_soundfile(self):
        try:
            import soundfile as sf  # type: ignore

            return sf
        except Exception as e:  # pragma: no cover
            raise AudioBackendUnavailableError(
                "soundfile is required to decode synthesized speech. Install with: pip install -e '.[voice]'"
            ) from e

    async def probe_microphone(self) -> None:
        """Open and close the default input device once.

        Raises:
            MicrophonePermissionError: If the device cannot be opened.
        """
        sd = self._require_sounddevice()

        def _probe() -> None:
            stream = sd.InputStream(
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
            )
            try:
                stream.start()
                stream.stop()
            finally:
                stream.close()

        try:
            await asyncio.to_thread(_probe)
        except Exception as e:
            raise MicrophonePermissionError(f"Please allow microphone access to use speech recognition ({e})") from e

    async def open_input_stream(self, callback: InputCallback):
        """Open and start a streaming input; ``callback`` runs on the audio thread."""
        sd = self._require_sounddevice()
        try:
            stream = sd.InputStream(
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
                blocksize=self._config.block_size,
                callback=callback,
            )
            await asyncio.to_thread(stream.start)
        except Exception as e:
            raise DeviceError(f"Could not open the microphone: {e}") from e
        return stream

    async def close_stream(self, stream) -> None:  # noqa: ANN001
        try:
            await asyncio.to_thread(stream.stop)
            await asyncio.to_thread(stream.close)
        except Exception as e:
            logger.debug(f"Closing input stream failed: {e}")

    async def start_recording(self) -> None:
        """Start mic capture (push-to-talk)."""
        sd = self._require_sounddevice()
        self._recording_frames = []

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            self._recording_frames.append(indata.copy())

        try:
            self._recording_stream = sd.InputStream(
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
                callback=callback,
            )
            await asyncio.to_thread(self._recording_stream.start)
        except Exception as e:
            self._recording_stream = None
            raise MicrophonePermissionError(f"Error accessing microphone: {e}") from e

    async def stop_recording(self) -> np.ndarray:
        """Stop mic capture and return audio as int16 numpy array [samples, channels]."""
        if self._recording_stream is None:
            return np.zeros((0, self._config.channels), dtype=np.int16)

        stream = self._recording_stream
        self._recording_stream = None

        await self.close_stream(stream)

        if not self._recording_frames:
            return np.zeros((0, self._config.channels), dtype=np.int16)

        audio = np.concatenate(self._recording_frames, axis=0)
        self._recording_frames = []
        return audio

    def encode_wav(self, audio: np.ndarray) -> bytes:
        """Encode int16 PCM samples as an in-memory WAV file."""
        if audio.ndim == 1:
            audio = audio[:, None]

        audio_i16 = audio.astype(np.int16, copy=False)

        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(audio_i16.shape[1])
            wf.setsampwidth(2)  # int16
            wf.setframerate(self._config.sample_rate)
            wf.writeframes(audio_i16.tobytes())
        return buf.getvalue()

    def decode_clip(self, clip: bytes) -> tuple[np.ndarray, int]:
        """Decode an encoded clip (WAV, MP3, OGG, ...) into float32 samples."""
        sf = self._require_soundfile()
        try:
            data, sr = sf.read(io.BytesIO(clip), dtype="float32")
        except Exception as e:
            raise DeviceError(f"Could not decode audio clip ({len(clip)} bytes): {e}") from e
        return data, int(sr)

    def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        """Blocking playback; run it in a worker thread."""
        sd = self._require_sounddevice()
        try:
            sd.play(samples, samplerate=sample_rate)
            sd.wait()
        except Exception as e:
            raise DeviceError(f"Error playing audio: {e}") from e

    def stop_playback(self) -> None:
        try:
            sd = self._require_sounddevice()
            sd.stop()
        except Exception as e:
            logger.debug(f"Stopping playback failed: {e}")
