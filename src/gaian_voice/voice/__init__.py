"""
Voice module: microphone capture, recognition and speaker playback.
"""

from gaian_voice.voice.audio_io import AudioIO, AudioIOConfig
from gaian_voice.voice.capture import (
    CaptureConfig,
    CaptureErrorKind,
    CaptureEvent,
    CaptureEventType,
    CaptureSource,
    MicrophoneCapture,
    UtteranceSegmenter,
)
from gaian_voice.voice.playback import PlaybackEvent, PlaybackEventType, PlaybackSink, SpeakerPlayback
from gaian_voice.voice.stt import STTConfig, SpeechRecognizer, WhisperRecognizer

__all__ = [
    "AudioIO",
    "AudioIOConfig",
    "CaptureConfig",
    "CaptureErrorKind",
    "CaptureEvent",
    "CaptureEventType",
    "CaptureSource",
    "MicrophoneCapture",
    "PlaybackEvent",
    "PlaybackEventType",
    "PlaybackSink",
    "STTConfig",
    "SpeakerPlayback",
    "SpeechRecognizer",
    "UtteranceSegmenter",
    "WhisperRecognizer",
]
