"""
Remote gateway client.

Issues the three outbound requests of the voice front end:

- reply:         POST {reply_path}  JSON {"messages": [{role, content}, ...]}
- synthesis:     POST {speech_path} JSON {"text": ...}  -> audio/* payload
- transcription: POST {speech_path} multipart "file"    -> {"text": ...}

Every call is single-shot with no retry. Failures raise TransportError
(non-success status, connection trouble) or ProtocolError (unexpected
response shape), both carrying a human-readable ``cause``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from gaian_voice.config import get_settings
from gaian_voice.conversation.schemas import WireMessage
from gaian_voice.exceptions import ProtocolError, TransportError

logger = logging.getLogger(__name__)


class RemoteGatewayBase(ABC):
    """Abstract base class for the reply/speech service client."""

    @abstractmethod
    async def get_reply(self, history: Sequence[WireMessage]) -> str:
        """
        Ask the completion service for the next machine turn.

        Args:
            history: Wire messages in order, directive first.

        Returns:
            Reply text.
        """
        ...

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """
        Convert reply text into an audio clip.

        Args:
            text: Text to speak.

        Returns:
            Encoded audio bytes.
        """
        ...

    @abstractmethod
    async def transcribe(self, audio: bytes) -> str:
        """
        Convert a recorded clip into text.

        Args:
            audio: WAV-encoded recording.

        Returns:
            Transcribed text.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""


class RemoteGateway(RemoteGatewayBase):
    """
    httpx-based gateway to the chat and speech endpoints.

    The HTTP client is created on first use and shared by all calls.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        *,
        reply_path: str | None = None,
        speech_path: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            base_url: Service base URL (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided;
                the config default is no timeout).
            reply_path: Reply endpoint path (uses config if not provided).
            speech_path: Speech endpoint path (uses config if not provided).
            transport: Optional httpx transport, e.g. for tests.
        """
        settings = get_settings()
        self._base_url = base_url or settings.gateway_base_url
        self._timeout = timeout if timeout is not None else settings.gateway_timeout
        self._reply_path = reply_path or settings.reply_path
        self._speech_path = speech_path or settings.speech_path
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, what: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{what} request to {path} failed: {e!r}")
            raise TransportError(f"Could not reach the {what} service: {e}") from e

        if response.is_success:
            return response

        cause = _error_cause(response) or f"Failed to get {what} response: {response.status_code}"
        logger.warning(f"{what} request returned {response.status_code}: {cause}")
        raise TransportError(cause, status_code=response.status_code)

    async def get_reply(self, history: Sequence[WireMessage]) -> str:
        payload = {"messages": [message.model_dump() for message in history]}
        logger.debug(f"Requesting reply for {len(payload['messages'])} messages")

        response = await self._post(self._reply_path, "reply", json=payload)
        data = _json_body(response, "reply")

        text = data.get("content", data.get("text")) if isinstance(data, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise ProtocolError("Reply response did not contain any text", status_code=response.status_code)
        return text.strip()

    async def synthesize(self, text: str) -> bytes:
        text = (text or "").strip()
        if not text:
            raise ValueError("cannot synthesize empty text")

        response = await self._post(self._speech_path, "speech", json={"text": text})

        content_type = response.headers.get("content-type", "")
        if not content_type.lower().startswith("audio/"):
            cause = _error_cause(response) or "Response was not audio format"
            raise ProtocolError(cause, status_code=response.status_code)

        audio = response.content
        if not audio:
            raise ProtocolError("Empty audio received from API", status_code=response.status_code)

        logger.debug(f"Synthesized {len(audio)} bytes of {content_type} for {len(text)} chars")
        return audio

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise ValueError("cannot transcribe an empty recording")

        files = {"file": ("audio.wav", audio, "audio/wav")}
        response = await self._post(self._speech_path, "transcription", files=files)
        data = _json_body(response, "transcription")

        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ProtocolError("Transcription response did not contain text", status_code=response.status_code)
        return text.strip()


def _json_body(response: httpx.Response, what: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise ProtocolError(f"The {what} service returned malformed JSON", status_code=response.status_code) from e


def _error_cause(response: httpx.Response) -> str | None:
    """Extract the ``error`` field of a JSON failure payload, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return None
