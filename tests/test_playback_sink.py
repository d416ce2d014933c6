"""
Tests for the playback sink contract and the speaker-backed adapter.
"""

import asyncio
import threading

import numpy as np
import pytest

from gaian_voice.exceptions import DeviceError, PlaybackBusyError
from gaian_voice.voice.audio_io import AudioIO
from gaian_voice.voice.playback import PlaybackEvent, PlaybackEventType, SpeakerPlayback


class FakeSpeaker(AudioIO):
    """AudioIO whose playback blocks until released, like sd.play + sd.wait."""

    def __init__(self, *, decode_error: Exception | None = None, hold: bool = False) -> None:
        super().__init__()
        self.decode_error = decode_error
        self.release = threading.Event()
        if not hold:
            self.release.set()
        self.played: list[int] = []
        self.stopped = 0

    def decode_clip(self, clip: bytes) -> tuple[np.ndarray, int]:
        if self.decode_error is not None:
            raise self.decode_error
        return np.zeros(2400, dtype=np.float32), 24000

    def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        self.played.append(sample_rate)
        self.release.wait(timeout=2.0)

    def stop_playback(self) -> None:
        self.stopped += 1
        self.release.set()


async def until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class TestSpeakerPlayback:
    @pytest.mark.asyncio
    async def test_play_reports_started_then_ended(self) -> None:
        speaker = FakeSpeaker()
        playback = SpeakerPlayback(speaker)
        events: list[PlaybackEvent] = []
        playback.subscribe(events.append)

        playback.play(b"ID3clip")
        assert playback.is_playing
        await until(lambda: len(events) == 2)

        assert [e.type for e in events] == [PlaybackEventType.STARTED, PlaybackEventType.ENDED]
        assert speaker.played == [24000]
        assert not playback.is_playing

    @pytest.mark.asyncio
    async def test_second_play_is_rejected(self) -> None:
        speaker = FakeSpeaker(hold=True)
        playback = SpeakerPlayback(speaker)
        playback.subscribe(lambda event: None)

        playback.play(b"one")
        with pytest.raises(PlaybackBusyError):
            playback.play(b"two")

        playback.stop()
        await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_a_no_op(self) -> None:
        speaker = FakeSpeaker()
        playback = SpeakerPlayback(speaker)
        events: list[PlaybackEvent] = []
        playback.subscribe(events.append)

        playback.stop()
        playback.stop()
        await asyncio.sleep(0.01)

        assert events == []
        assert speaker.stopped == 0

    @pytest.mark.asyncio
    async def test_stop_aborts_and_ends_once(self) -> None:
        speaker = FakeSpeaker(hold=True)
        playback = SpeakerPlayback(speaker)
        events: list[PlaybackEvent] = []
        playback.subscribe(events.append)

        playback.play(b"ID3clip")
        await until(lambda: len(speaker.played) == 1)
        playback.stop()
        playback.stop()
        await asyncio.sleep(0.05)

        assert [e.type for e in events].count(PlaybackEventType.ENDED) == 1
        assert speaker.stopped == 1
        assert not playback.is_playing

    @pytest.mark.asyncio
    async def test_undecodable_clip_reports_error(self) -> None:
        speaker = FakeSpeaker(decode_error=DeviceError("Could not decode audio clip"))
        playback = SpeakerPlayback(speaker)
        events: list[PlaybackEvent] = []
        playback.subscribe(events.append)

        playback.play(b"garbage")
        await until(lambda: len(events) == 1)

        assert events[0].type == PlaybackEventType.ERROR
        assert "decode" in events[0].detail
        assert not playback.is_playing
        assert speaker.played == []
