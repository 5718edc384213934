"""Speech-recognition adapter: a strict start/result|error/end state machine.

The platform engine is injected. :class:`RecognitionAdapter` turns one engine
call into a single ordered channel of lifecycle events::

    Started -> (Result | Failure) -> Ended

and guards against overlapping sessions.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Iterable, Optional, Protocol, Union

LOGGER = logging.getLogger(__name__)


class RecognitionState(str, Enum):
    IDLE = "Idle"
    LISTENING = "Listening"
    SETTLING = "Settling"


# ---------------------------------------------------------------------------
# Error taxonomy


class RecognitionError(Exception):
    """Recognition failure carrying the platform code and a user-facing text."""

    code = "unknown"

    def __init__(self, code: Optional[str] = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        return f"recognition error: {self.code}"


class RecognitionUnsupported(RecognitionError):
    code = "unsupported"

    @property
    def user_message(self) -> str:
        return "speech recognition is not supported on this platform"


class RecognitionNoSpeech(RecognitionError):
    code = "no-speech"

    @property
    def user_message(self) -> str:
        return "no voice detected"


class RecognitionNoMicrophone(RecognitionError):
    code = "audio-capture"

    @property
    def user_message(self) -> str:
        return "no microphone detected"


class RecognitionPermissionDenied(RecognitionError):
    code = "not-allowed"

    @property
    def user_message(self) -> str:
        return "microphone permission denied"


class RecognitionOther(RecognitionError):
    """Any platform code without a dedicated message."""

    def __init__(self, code: str) -> None:
        super().__init__(code)


_ERRORS_BY_CODE = {
    RecognitionNoSpeech.code: RecognitionNoSpeech,
    RecognitionNoMicrophone.code: RecognitionNoMicrophone,
    RecognitionPermissionDenied.code: RecognitionPermissionDenied,
}


def recognition_error_for(code: str) -> RecognitionError:
    """Map a platform error code onto the recognition error taxonomy."""

    error_cls = _ERRORS_BY_CODE.get(code)
    if error_cls is None:
        return RecognitionOther(code)
    return error_cls()


def describe_recognition_error(code: str) -> str:
    return recognition_error_for(code).user_message


# ---------------------------------------------------------------------------
# Lifecycle events


@dataclass(frozen=True)
class RecognitionStarted:
    pass


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str


@dataclass(frozen=True)
class RecognitionFailure:
    error: RecognitionError


@dataclass(frozen=True)
class RecognitionEnded:
    pass


RecognitionEvent = Union[RecognitionStarted, RecognitionResult, RecognitionFailure, RecognitionEnded]
EventSink = Callable[[RecognitionEvent], None]


# ---------------------------------------------------------------------------
# Engines


class RecognitionEngine(Protocol):
    """Platform speech-recognition capability."""

    def available(self) -> bool:  # pragma: no cover - structural
        ...

    async def recognize(self) -> str:  # pragma: no cover - structural
        """Return the final transcript or raise :class:`RecognitionError`."""
        ...


class ScriptedRecognitionEngine:
    """Deterministic engine that replays scripted outcomes, one per session.

    Each outcome is either a transcript string or a :class:`RecognitionError`
    to raise. An exhausted script behaves like silence (``no-speech``).
    """

    def __init__(
        self,
        outcomes: Iterable[Union[str, RecognitionError]] = (),
        *,
        available: bool = True,
    ) -> None:
        self._outcomes: Deque[Union[str, RecognitionError]] = deque(outcomes)
        self._available = available
        self.calls = 0

    def available(self) -> bool:
        return self._available

    def push(self, outcome: Union[str, RecognitionError]) -> None:
        self._outcomes.append(outcome)

    async def recognize(self) -> str:
        self.calls += 1
        await asyncio.sleep(0)
        if not self._outcomes:
            raise RecognitionNoSpeech()
        outcome = self._outcomes.popleft()
        if isinstance(outcome, RecognitionError):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Adapter


class RecognitionAdapter:
    """Runs at most one recognition session at a time."""

    def __init__(self, engine: Optional[RecognitionEngine]) -> None:
        self.engine = engine
        self._state = RecognitionState.IDLE

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def supported(self) -> bool:
        return self.engine is not None and self.engine.available()

    def start(self, sink: EventSink) -> Optional[asyncio.Task]:
        """Begin a session, emitting ``RecognitionStarted`` before returning.

        Raises :class:`RecognitionUnsupported` synchronously, without changing
        state, when there is no usable engine. A call while a session is
        active is ignored and returns ``None``.
        """

        if not self.supported:
            raise RecognitionUnsupported()
        if self._state is not RecognitionState.IDLE:
            LOGGER.warning("recognition start ignored: session already %s", self._state.value)
            return None

        loop = asyncio.get_running_loop()
        self._state = RecognitionState.LISTENING
        sink(RecognitionStarted())
        return loop.create_task(self._listen(sink))

    async def _listen(self, sink: EventSink) -> None:
        try:
            transcript = await self.engine.recognize()
        except RecognitionError as exc:
            outcome: RecognitionEvent = RecognitionFailure(exc)
        except Exception as exc:
            LOGGER.exception("recognition engine raised %s", exc.__class__.__name__)
            outcome = RecognitionFailure(RecognitionOther("aborted"))
        else:
            outcome = RecognitionResult(transcript)

        self._state = RecognitionState.SETTLING
        try:
            sink(outcome)
        finally:
            self._state = RecognitionState.IDLE
        sink(RecognitionEnded())
