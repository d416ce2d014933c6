"""
Main entry point for the Gaian voice chat.
"""

import argparse
import asyncio
import logging
import sys

from gaian_voice.config import Settings, get_settings
from gaian_voice.conversation.log import ConversationLog
from gaian_voice.coordinator.turn_coordinator import CoordinatorConfig, TurnCoordinator
from gaian_voice.gateway.remote_gateway import RemoteGateway
from gaian_voice.io.terminal_interface import TerminalInterface
from gaian_voice.voice.audio_io import AudioIO, AudioIOConfig
from gaian_voice.voice.capture import CaptureConfig, MicrophoneCapture
from gaian_voice.voice.playback import SpeakerPlayback
from gaian_voice.voice.stt import STTConfig, WhisperRecognizer


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(prog="gaian-voice", description="Talk to Gaian by voice or text.")
    parser.add_argument(
        "--base-url",
        default=settings.gateway_base_url,
        help="Base URL of the chat and speech service",
    )
    parser.add_argument(
        "--continuous",
        action="store_true",
        help="Start with continuous voice mode enabled",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=settings.log_level,
        help="Logging level",
    )
    parser.add_argument(
        "--stt-model",
        default=settings.stt_model,
        help="faster-whisper model size used for continuous listening",
    )
    parser.add_argument(
        "--stt-device",
        choices=["cpu", "cuda", "auto"],
        default=settings.stt_device,
        help="Device for the speech recognizer",
    )
    return parser


def build_coordinator(args: argparse.Namespace, settings: Settings) -> tuple[TurnCoordinator, ConversationLog]:
    """Wire the real microphone, speaker and gateway into a coordinator."""
    audio = AudioIO(AudioIOConfig(sample_rate=settings.sample_rate))
    recognizer = WhisperRecognizer(
        STTConfig(model_size=args.stt_model, device=args.stt_device, language=settings.stt_language)
    )
    capture = MicrophoneCapture(
        audio=audio,
        recognizer=recognizer,
        config=CaptureConfig(
            sample_rate=settings.sample_rate,
            speech_rms_threshold=settings.speech_rms_threshold,
            silence_duration_s=settings.silence_duration_s,
            interim_interval_s=settings.interim_interval_s,
            max_utterance_s=settings.max_utterance_s,
        ),
    )
    playback = SpeakerPlayback(audio)
    gateway = RemoteGateway(
        args.base_url,
        settings.gateway_timeout,
        reply_path=settings.reply_path,
        speech_path=settings.speech_path,
    )
    log = ConversationLog(settings.directive)
    coordinator = TurnCoordinator(
        capture=capture,
        playback=playback,
        gateway=gateway,
        log=log,
        config=CoordinatorConfig.from_settings(settings),
    )
    return coordinator, log


async def run_chat(argv: list[str] | None = None) -> None:
    """
    Run an interactive chat session.

    Builds every component from settings and command-line overrides, then
    hands control to the terminal interface until the user quits.
    """
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    logger = logging.getLogger(__name__)
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    logger.info(f"Connecting to {args.base_url}")
    coordinator, log = build_coordinator(args, settings)
    interface = TerminalInterface(coordinator, log)

    try:
        if args.continuous:
            await coordinator.set_continuous(True)
        await interface.run()
    finally:
        await coordinator.close()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_chat(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nChat session terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
