"""
Error taxonomy for the voice front end.

Three families mirror where a failure originates:

- DeviceError: microphone, recognizer or loudspeaker trouble, recovered
  locally by returning the coordinator to Idle or ArmedListening.
- GatewayError: a reply, synthesis or transcription request failed
  (TransportError) or answered with an unexpected shape (ProtocolError).
- CoordinatorError: a command that the current mode does not allow.
"""

from __future__ import annotations


class GaianVoiceError(Exception):
    """Base class for every error raised by gaian-voice."""


class DeviceError(GaianVoiceError):
    """A local audio device or speech engine failed."""


class AudioBackendUnavailableError(DeviceError):
    """The audio backend (PortAudio, libsndfile) is not installed or unusable."""


class MicrophonePermissionError(DeviceError):
    """The microphone could not be opened."""


class RecognitionEngineError(DeviceError):
    """The speech recognizer could not be loaded or failed mid-utterance."""


class CaptureBusyError(DeviceError):
    """Capture was asked to start while already listening or recording."""


class PlaybackBusyError(DeviceError):
    """Playback was asked to start while a clip is already playing."""


class GatewayError(GaianVoiceError):
    """A remote request failed. ``cause`` is safe to show to the user."""

    def __init__(self, cause: str, *, status_code: int | None = None) -> None:
        super().__init__(cause)
        self.cause = cause
        self.status_code = status_code


class TransportError(GatewayError):
    """The request could not be delivered or returned a non-success status."""


class ProtocolError(GatewayError):
    """The response did not have the expected shape or content type."""


class CoordinatorError(GaianVoiceError):
    """Base for turn-taking rule violations."""


class InvalidTransitionError(CoordinatorError):
    """A mode change that the transition table does not list."""


class TurnRejectedError(CoordinatorError):
    """A user command that is not allowed in the current mode."""
