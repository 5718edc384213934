"""Shared fakes for controller tests: no network, microphone or speaker."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

import pytest

from chat import ChatEndpoint, ChatReply
from controller import (
    RecognitionAdapter,
    ScriptedRecognitionEngine,
    SessionController,
    SessionControllerConfig,
)


class FakeChat:
    """Stands in for ChatClient; replies are scripted per query."""

    def __init__(self) -> None:
        self.calls: List[Tuple[ChatEndpoint, str]] = []
        self.replies: Dict[str, object] = {}
        self.gates: Dict[str, threading.Event] = {}
        self.default_reply = "ok"

    def gate(self, query: str) -> threading.Event:
        event = threading.Event()
        self.gates[query] = event
        return event

    def send(self, endpoint: ChatEndpoint, query: str) -> ChatReply:
        self.calls.append((endpoint, query))
        gate = self.gates.get(query)
        if gate is not None:
            gate.wait(timeout=5)
        reply = self.replies.get(query, self.default_reply)
        if isinstance(reply, Exception):
            raise reply
        return ChatReply(response=reply)


class RecordingSynthesizer:
    def __init__(self) -> None:
        self.spoken: List[str] = []

    def speak(self, text: str) -> None:
        self.spoken.append(text)


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def synthesizer() -> RecordingSynthesizer:
    return RecordingSynthesizer()


@pytest.fixture
def engine() -> ScriptedRecognitionEngine:
    return ScriptedRecognitionEngine()


@pytest.fixture
def make_controller(chat, synthesizer, engine):
    created: List[SessionController] = []

    def factory(
        config: Optional[SessionControllerConfig] = None,
        *,
        recognizer: Optional[RecognitionAdapter] = None,
    ) -> SessionController:
        controller = SessionController(
            chat=chat,
            recognizer=recognizer or RecognitionAdapter(engine),
            synthesizer=synthesizer,
            config=config,
        )
        created.append(controller)
        return controller

    yield factory
    for controller in created:
        controller.close()
