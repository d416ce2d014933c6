"""Speech-to-text (offline) for continuous capture.

Default implementation uses `faster-whisper` if installed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import numpy as np

from gaian_voice.exceptions import RecognitionEngineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "small"
    # Default to CPU to avoid hard crashes when CUDA/cuDNN aren't present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    language: str | None = "en"
    vad_filter: bool = True


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    avg_logprob: float | None = None
    no_speech_prob: float | None = None


class SpeechRecognizer:
    async def transcribe_array(self, audio: np.ndarray) -> TranscriptionResult:
        raise NotImplementedError


class WhisperRecognizer(SpeechRecognizer):
    """faster-whisper wrapper working on in-memory 16 kHz samples."""

    def __init__(self, config: STTConfig | None = None) -> None:
        self._config = config or STTConfig()
        self._model = None

    @property
    def config(self) -> STTConfig:
        return self._config

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RecognitionEngineError(
                "faster-whisper is required for continuous listening. Install with: pip install -e '.[voice]'"
            ) from e

        device = self._config.device
        if device == "auto":
            # Be conservative: prefer CPU unless user explicitly requests CUDA.
            device = "cpu"

        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        try:
            self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        except Exception as e:  # pragma: no cover
            raise RecognitionEngineError(f"Could not load whisper model '{self._config.model_size}': {e}") from e
        logger.info(f"[VOICE][STT] loaded model={self._config.model_size} device={device}")
        return self._model

    async def transcribe_array(self, audio: np.ndarray) -> TranscriptionResult:
        samples = to_float_mono(audio)
        if samples.size == 0:
            return TranscriptionResult(text="")

        def _run() -> TranscriptionResult:
            model = self._load_model()
            try:
                segments, info = model.transcribe(
                    samples,
                    language=self._config.language,
                    vad_filter=self._config.vad_filter,
                )
                text_parts: list[str] = []
                for s in segments:
                    if s.text:
                        text_parts.append(s.text.strip())
            except Exception as e:
                raise RecognitionEngineError(f"Recognition failed: {e}") from e
            text = " ".join(t for t in text_parts if t).strip()
            avg_logprob = getattr(info, "avg_logprob", None)
            no_speech_prob = getattr(info, "no_speech_prob", None)
            return TranscriptionResult(text=text, avg_logprob=avg_logprob, no_speech_prob=no_speech_prob)

        return await asyncio.to_thread(_run)


def to_float_mono(audio: np.ndarray) -> np.ndarray:
    """Convert [samples] or [samples, channels] PCM into float32 mono in -1..1."""
    samples = audio.astype(np.float32)
    if np.issubdtype(audio.dtype, np.integer):
        samples /= 32768.0
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    return samples
