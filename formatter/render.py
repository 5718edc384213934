"""Plain-text projection of the session state for terminal front-ends."""

from __future__ import annotations

from typing import List, Optional

from controller.transcript import Message, Sender, SessionFlags

from .menu import MenuDocument, SegmentKind, classify

SENDER_LABELS = {
    Sender.USER: "You",
    Sender.BOT: "Nutribot",
}

RULE = "-" * 32

HELP_TEXT = """\
How to use Nutribot
  * Sending text: type your message and press Enter.
  * Using the microphone: type /mic and speak; your words are sent when you stop.
  * Reading replies aloud: type /tts to have Nutribot read its answers.
  * Server port: type /port <number> to talk to a backend on another port.
  * /info shows project information and /quit ends the session."""

INFO_TEXT = """\
Information
  Instituto Tecnológico de Costa Rica
  Tarea 3 - NutriTec
  Paradigmas de Programación (CE1106)
  Released under the MIT License. Copyright (c) 2024
  See the LICENSE file for details."""


def render_message(message: Message) -> List[str]:
    """Return the lines shown for ``message``, menu replies split by segment."""

    lines = [f"[{SENDER_LABELS[message.sender]}]"]
    content = classify(message.text) if message.sender is Sender.BOT else None
    if isinstance(content, MenuDocument):
        for seg in content.segments:
            if seg.kind is SegmentKind.TITLE:
                lines.append(f"  {seg.text.upper()}")
            elif seg.kind is SegmentKind.SEPARATOR:
                lines.append(f"  {RULE}")
            else:
                lines.append(f"    {seg.text}")
    else:
        lines.append(f"  {message.text}")
    return lines


def tts_label(flags: SessionFlags) -> str:
    return "TTS on" if flags.synthesis_enabled else "TTS off"


def render_status(flags: SessionFlags, *, pending: int = 0) -> str:
    parts = [tts_label(flags), f"port {flags.endpoint_port}"]
    if flags.listening:
        parts.append("listening...")
    if pending:
        parts.append(f"waiting on {pending}")
    return " | ".join(parts)


def render_error(flags: SessionFlags) -> Optional[str]:
    if flags.last_error is None:
        return None
    return f"! {flags.last_error}"
