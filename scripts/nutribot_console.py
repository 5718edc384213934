#!/usr/bin/env python3
"""Chat with the NutriBot backend from the terminal, by text or by voice."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, TextIO

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chat import ChatClient
from controller import (
    ConfigError,
    RecognitionAdapter,
    RecognitionConfig,
    RecognitionEngine,
    SessionController,
    load_config,
)
from formatter import HELP_TEXT, INFO_TEXT, render_error, render_message, render_status
from tts import KokoroSpeaker, KokoroStreamer

LOGGER = logging.getLogger("nutribot_console")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Talk to the NutriBot chat backend by text or microphone",
    )
    parser.add_argument("--config", type=Path, help="Optional TOML configuration file")
    parser.add_argument("--host", help="Chat backend host (default: localhost)")
    parser.add_argument("--port", type=int, help="Chat backend port (default: 8080)")
    parser.add_argument("--timeout", type=float, help="HTTP timeout for chat requests (default: none)")
    parser.add_argument(
        "--single-flight",
        action="store_true",
        default=None,
        help="Reject new messages while a reply is still pending",
    )
    parser.add_argument("--tts", action="store_true", help="Start with replies read aloud")
    parser.add_argument("--kokoro-base-url", help="Kokoro-FastAPI base URL (default: http://127.0.0.1:8880/v1)")
    parser.add_argument("--kokoro-voice", help="Kokoro voice identifier (default: ef_dora)")
    parser.add_argument("--vosk-model-dir", type=Path, help="Directory containing a Spanish Vosk model")
    parser.add_argument("--input-device", help="sounddevice input device name or index")
    parser.add_argument("--log-dir", type=Path, help="Directory to write JSONL session logs")
    parser.add_argument("--verbose", action="store_true", help="Print controller transitions")
    return parser


def build_overrides(args: argparse.Namespace, log_path: Optional[Path]) -> Dict[str, Dict[str, Any]]:
    device: Any = args.input_device
    if isinstance(device, str) and device.isdigit():
        device = int(device)
    return {
        "controller": {
            "host": args.host,
            "port": args.port,
            "single_flight": args.single_flight,
            "log_path": log_path,
        },
        "chat": {"timeout": args.timeout},
        "speech": {"base_url": args.kokoro_base_url, "voice": args.kokoro_voice},
        "recognition": {"model_path": args.vosk_model_dir, "device": device},
    }


def build_recognition_engine(config: RecognitionConfig) -> Optional[RecognitionEngine]:
    try:
        from asr import MicrophoneRecognitionEngine
    except ImportError as exc:
        LOGGER.warning("voice input disabled: %s", exc)
        return None
    return MicrophoneRecognitionEngine(config)


class ConsoleView:
    """Prints new transcript entries and status changes after each transition."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self._shown = 0
        self._last_status: Optional[str] = None
        self._last_error: Optional[str] = None

    def __call__(self, controller: SessionController) -> None:
        transcript = controller.transcript
        for message in transcript[self._shown :]:
            print("\n".join(render_message(message)), file=self.out)
        self._shown = len(transcript)

        status = render_status(controller.flags, pending=controller.pending)
        if status != self._last_status:
            print(f"({status})", file=self.out)
            self._last_status = status

        error = render_error(controller.flags)
        if error is not None and error != self._last_error:
            print(error, file=self.out)
        self._last_error = error


def dispatch(controller: SessionController, line: str, out: TextIO = sys.stdout) -> bool:
    """Handle one line of input; return ``False`` to end the session."""

    command, _, argument = line.strip().partition(" ")
    if command in ("/quit", "/exit"):
        return False
    if command == "/help":
        print(HELP_TEXT, file=out)
    elif command == "/info":
        print(INFO_TEXT, file=out)
    elif command == "/tts":
        controller.toggle_speech_output()
    elif command == "/mic":
        controller.start_listening()
    elif command == "/port":
        try:
            port = int(argument)
        except ValueError:
            print(f"! port must be a number, got {argument!r}", file=out)
            return True
        controller.set_endpoint_port(port)
        if controller.flags.endpoint_port != port:
            print("! port must be between 1 and 65535", file=out)
    else:
        controller.submit_query(line)
    return True


def start_line_reader(
    loop: asyncio.AbstractEventLoop,
    lines: "asyncio.Queue[Optional[str]]",
    read_line: Callable[[str], str] = input,
) -> threading.Thread:
    """Feed stdin lines into ``lines`` from a daemon thread; ``None`` marks EOF.

    The reader is a daemon thread, so a pending ``input()`` never blocks
    interpreter shutdown.
    """

    def pump() -> None:
        while True:
            try:
                line: Optional[str] = read_line("> ")
            except EOFError:
                line = None
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                return  # loop already closed
            if line is None:
                return

    thread = threading.Thread(target=pump, name="console-input", daemon=True)
    thread.start()
    return thread


async def run_console(
    controller: SessionController,
    out: TextIO = sys.stdout,
    *,
    read_line: Callable[[str], str] = input,
) -> None:
    print("Nutribot ready. Type /help for commands.", file=out)
    lines: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
    start_line_reader(asyncio.get_running_loop(), lines, read_line)
    while True:
        line = await lines.get()
        if line is None or not dispatch(controller, line, out):
            break
    await controller.wait_idle()


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    if not args.verbose:
        logging.getLogger("session_controller").setLevel(logging.WARNING)

    log_path = None
    if args.log_dir is not None:
        args.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        log_path = args.log_dir / f"session_{timestamp}.jsonl"

    try:
        config = load_config(args.config, overrides=build_overrides(args, log_path))
    except ConfigError as exc:
        parser.error(str(exc))

    try:
        streamer = KokoroStreamer(config.speech)
        speaker = KokoroSpeaker(streamer, config.speaker)
    except ValueError as exc:
        parser.error(str(exc))

    chat = ChatClient(config.chat)
    controller = SessionController(
        chat=chat,
        recognizer=RecognitionAdapter(build_recognition_engine(config.recognition)),
        synthesizer=speaker,
        config=config.controller,
    )
    controller.subscribe(ConsoleView())
    if args.tts:
        controller.toggle_speech_output()

    with contextlib.ExitStack() as stack:
        stack.callback(chat.close)
        stack.callback(speaker.close)
        stack.callback(controller.close)
        try:
            asyncio.run(run_console(controller))
        except KeyboardInterrupt:
            print("\nInterrupted", file=sys.stderr)

    if log_path is not None:
        print(f"Logs written to {log_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
