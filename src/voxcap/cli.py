"""Command-line interface for voxcap."""

import argparse
import asyncio
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _build_orchestrator(args: argparse.Namespace, results: list[str], errors: list[str]):
    from voxcap.core.orchestrator import CaptureOrchestrator
    from voxcap.core.session import EngineKind, Language
    from voxcap.engines import ContinuousRecognizer, RecordedClipTranscriber, SpeechRecognitionBackend
    from voxcap.providers import TranscriptionClient

    clip_engine = RecordedClipTranscriber(
        TranscriptionClient(),
        silence_threshold_db=args.threshold_db,
        silence_duration_ms=args.silence_ms,
    )
    continuous_engine = ContinuousRecognizer(SpeechRecognitionBackend())

    def on_error(kind, message: str) -> None:
        errors.append(message)
        print(f"Error ({kind.value}): {message}")

    return CaptureOrchestrator(
        clip_engine,
        continuous_engine,
        on_result=results.append,
        on_error=on_error,
        on_notice=lambda message: print(f"Notice: {message}"),
        language=Language(args.language) if args.language else None,
        preferred_engine=EngineKind(args.engine) if args.engine else None,
    )


def cmd_listen(args: argparse.Namespace) -> int:
    """Capture one utterance from the microphone and print the transcript."""
    results: list[str] = []
    errors: list[str] = []

    async def run_session() -> None:
        orchestrator = _build_orchestrator(args, results, errors)
        print(
            f"Listening ({orchestrator.active_engine.value}, "
            f"{orchestrator.current_language.value})... press Ctrl+C to stop"
        )

        try:
            if not await orchestrator.start():
                return
            while orchestrator.is_active:
                await asyncio.sleep(0.1)
        except asyncio.CancelledError:
            await orchestrator.stop()
            # Let an in-flight transcription finish
            while orchestrator.is_processing:
                await asyncio.sleep(0.1)
            raise
        finally:
            await orchestrator.aclose()

    try:
        asyncio.run(run_session())
    except KeyboardInterrupt:
        print("\nInterrupted")

    for text in results:
        print(text)
    return 0 if results else 1


def cmd_probe(args: argparse.Namespace) -> int:
    """Report engine support and input devices."""
    from voxcap.core.errors import MicrophoneAccessError
    from voxcap.engines import SpeechRecognitionBackend

    print("voxcap probe")
    print("=" * 50)

    supported = SpeechRecognitionBackend().is_supported()
    print(f"\nContinuous recognition: {'available' if supported else 'unavailable'}")
    print("Clip transcription: available")

    print("\nInput devices:")
    try:
        import sounddevice as sd

        devices = sd.query_devices()
    except (ImportError, OSError) as e:
        print(f"  {MicrophoneAccessError(str(e))}")
        return 1

    found = False
    for index, device in enumerate(devices):
        if device["max_input_channels"] > 0:
            found = True
            print(f"  [{index}] {device['name']} ({int(device['default_samplerate'])} Hz)")
    if not found:
        print("  none")
    return 0 if found else 1


def cmd_check_config(args: argparse.Namespace) -> int:
    """Validate the active configuration."""
    from voxcap.config import get_config

    config = get_config()
    print(f"Config: {config.source or 'defaults'}")

    errors = config.validate()
    if errors:
        print("\nConfiguration errors:")
        for error in errors:
            print(f"  - {error}")
        return 1

    print("Configuration: OK")
    print(f"  Language: {config.VOICE_LANGUAGE} ({config.get_locale(config.VOICE_LANGUAGE)})")
    print(f"  Preferred engine: {config.PREFERRED_ENGINE}")
    print(f"  VAD: {config.VAD_SILENCE_THRESHOLD_DB} dB for {config.VAD_SILENCE_DURATION_MS}ms")
    print(f"  Transcription URL: {config.TRANSCRIBE_URL}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="voxcap",
        description="Voice input capture with silence endpointing and engine fallback",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # voxcap listen
    listen_parser = subparsers.add_parser(
        "listen",
        help="Capture one utterance and print the transcript",
    )
    listen_parser.add_argument(
        "--engine",
        choices=["continuous", "clip"],
        default=None,
        help="Engine to start with (default: PREFERRED_ENGINE)",
    )
    listen_parser.add_argument(
        "--language",
        choices=["primary", "secondary"],
        default=None,
        help="Input language (default: VOICE_LANGUAGE)",
    )
    listen_parser.add_argument(
        "--threshold-db",
        type=float,
        default=None,
        dest="threshold_db",
        help="Silence threshold in dB for the clip engine",
    )
    listen_parser.add_argument(
        "--silence-ms",
        type=int,
        default=None,
        dest="silence_ms",
        help="Silence after speech that ends a clip, in ms",
    )
    listen_parser.set_defaults(func=cmd_listen)

    # voxcap probe
    probe_parser = subparsers.add_parser(
        "probe",
        help="Show engine support and input devices",
    )
    probe_parser.set_defaults(func=cmd_probe)

    # voxcap check-config
    check_parser = subparsers.add_parser(
        "check-config",
        help="Validate configuration",
    )
    check_parser.set_defaults(func=cmd_check_config)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
