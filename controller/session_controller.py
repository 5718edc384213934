"""Session controller that serializes typed input, speech recognition, chat
round trips and speech output into one ordered transcript."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple

from chat import ChatClient, ChatEndpoint, ChatError
from tts import SpeechSynthesizer, clean_for_speech

from .config import SessionControllerConfig
from .recognition import (
    RecognitionAdapter,
    RecognitionEnded,
    RecognitionEvent,
    RecognitionFailure,
    RecognitionResult,
    RecognitionStarted,
    RecognitionUnsupported,
)
from .transcript import Message, Sender, SessionFlags, Transcript, is_valid_port

CONNECTIVITY_FAILURE_MESSAGE = "Could not reach the server."
REPLY_PENDING_MESSAGE = "still waiting for the previous reply; message not sent"

LOGGER = logging.getLogger("session_controller")
if not LOGGER.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    LOGGER.addHandler(handler)
LOGGER.setLevel(logging.INFO)

Listener = Callable[["SessionController"], None]


class SessionController:
    """Sole owner and writer of the transcript and the session flags.

    Entry points (``submit_query``, ``toggle_speech_output``,
    ``set_endpoint_port``, ``start_listening``) must be called from code
    running on the event loop. State mutations are synchronous; only the chat
    round trip and the recognition session suspend.
    """

    def __init__(
        self,
        *,
        chat: ChatClient,
        recognizer: RecognitionAdapter,
        synthesizer: SpeechSynthesizer,
        config: Optional[SessionControllerConfig] = None,
    ) -> None:
        self.chat = chat
        self.recognizer = recognizer
        self.synthesizer = synthesizer
        self.config = config or SessionControllerConfig()

        self._transcript = Transcript()
        self._flags = SessionFlags(endpoint_port=self.config.port)
        self._pending: Set[asyncio.Task] = set()
        self._heard: Optional[str] = None
        self._listeners: List[Listener] = []
        self.session_id = uuid.uuid4().hex[:8]

        self._log_path = self.config.log_path
        self._log_file = None
        if self._log_path is not None:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = self._log_path.open("a", encoding="utf-8")

        self._transition("SessionStart", host=self.config.host, port=self._flags.endpoint_port)

    # ------------------------------------------------------------------
    # Read-only views

    @property
    def transcript(self) -> Tuple[Message, ...]:
        return self._transcript.messages

    @property
    def flags(self) -> SessionFlags:
        return self._flags

    @property
    def pending(self) -> int:
        return sum(1 for task in self._pending if not task.done())

    @property
    def endpoint(self) -> ChatEndpoint:
        return ChatEndpoint(host=self.config.host, port=self._flags.endpoint_port)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(controller)`` after every transition."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Entry points

    def submit_query(self, text: str) -> Optional[asyncio.Task]:
        """Append the user message and start the chat exchange.

        Returns the exchange task, or ``None`` when nothing was submitted.
        Overlapping exchanges are not serialized unless ``single_flight`` is
        configured; their replies are appended in arrival order.
        """

        query = text.strip()
        if not query:
            return None
        if self.config.single_flight and self.pending:
            self._flags = replace(self._flags, last_error=REPLY_PENDING_MESSAGE)
            self._transition(
                "QueryRejected",
                reason="single_flight",
                pending=self.pending,
                query_preview=self._truncate(query),
            )
            return None

        loop = asyncio.get_running_loop()
        endpoint = self.endpoint
        if self._flags.last_error == REPLY_PENDING_MESSAGE:
            self._flags = replace(self._flags, last_error=None)
        message = self._append(query, Sender.USER)
        task = loop.create_task(self._exchange(message, endpoint))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def toggle_speech_output(self) -> None:
        enabled = not self._flags.synthesis_enabled
        self._flags = replace(self._flags, synthesis_enabled=enabled)
        self._transition("SpeechOutputToggled", enabled=enabled)

    def set_endpoint_port(self, value: int) -> None:
        if not is_valid_port(value):
            self._transition("PortRejected", value=repr(value), port=self._flags.endpoint_port)
            return
        self._flags = replace(self._flags, endpoint_port=value)
        self._transition("PortChanged", port=value)

    def start_listening(self) -> Optional[asyncio.Task]:
        """Start a recognition session; the recognized text is submitted."""

        try:
            return self.recognizer.start(self._on_recognition_event)
        except RecognitionUnsupported as exc:
            self._flags = replace(self._flags, listening=False, last_error=exc.user_message)
            self._transition("RecognitionUnsupported", error=exc.user_message)
            return None

    async def wait_idle(self) -> None:
        """Wait until every in-flight exchange has appended its reply."""

        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    # ------------------------------------------------------------------
    # Event handlers

    async def _exchange(self, message: Message, endpoint: ChatEndpoint) -> Message:
        start = time.monotonic()
        try:
            reply = await asyncio.to_thread(self.chat.send, endpoint, message.text)
            text = reply.response
        except ChatError as exc:
            self._transition(
                "ChatFailed",
                reply_to=message.sequence,
                url=endpoint.url,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            text = CONNECTIVITY_FAILURE_MESSAGE
        except Exception as exc:  # pragma: no cover - defensive guard
            LOGGER.exception("chat exchange raised %s", exc.__class__.__name__)
            text = CONNECTIVITY_FAILURE_MESSAGE

        latency = time.monotonic() - start
        reply_message = self._append(
            text,
            Sender.BOT,
            reply_to=message.sequence,
            latency_ms=int(latency * 1000),
        )
        if self._flags.synthesis_enabled:
            self._speak(text)
        return reply_message

    def _on_recognition_event(self, event: RecognitionEvent) -> None:
        if isinstance(event, RecognitionStarted):
            self._heard = None
            self._flags = replace(self._flags, listening=True, last_error=None)
            self._transition("ListeningStarted")
        elif isinstance(event, RecognitionResult):
            self._heard = event.transcript
            self._flags = replace(self._flags, last_error=None)
            self._transition("Recognized", transcript_preview=self._truncate(event.transcript))
        elif isinstance(event, RecognitionFailure):
            self._heard = None
            self._flags = replace(self._flags, listening=False, last_error=event.error.user_message)
            self._transition("RecognitionFailed", code=event.error.code, error=event.error.user_message)
        elif isinstance(event, RecognitionEnded):
            heard, self._heard = self._heard, None
            self._flags = replace(self._flags, listening=False)
            self._transition("ListeningEnded")
            if heard is not None:
                self.submit_query(heard)

    # ------------------------------------------------------------------
    # Helpers

    def _append(self, text: str, sender: Sender, **metadata) -> Message:
        message = self._transcript.append(text, sender)
        self._transition(
            "UserMessage" if sender is Sender.USER else "BotMessage",
            sequence=message.sequence,
            text_preview=self._truncate(text),
            **metadata,
        )
        return message

    def _speak(self, text: str) -> None:
        spoken = clean_for_speech(text)
        if not spoken:
            return
        try:
            self.synthesizer.speak(spoken)
        except Exception as exc:  # pragma: no cover - defensive guard
            LOGGER.warning("speech output failed: %s", exc)
            return
        self._transition("SpeechOutput", text_preview=self._truncate(spoken))

    def _transition(self, state: str, **metadata) -> None:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "state": state,
            "session": self.session_id,
        }
        payload.update(metadata)
        line = json.dumps(payload, ensure_ascii=False, default=str)
        LOGGER.info(line)
        if self._log_file is not None:
            self._log_file.write(line + "\n")
            self._log_file.flush()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                LOGGER.exception("session listener failed")

    @staticmethod
    def _truncate(text: str, *, limit: int = 120) -> str:
        text = text.strip()
        if len(text) <= limit:
            return text
        return text[: limit - 3] + "..."
