"""HTTP client for the NutriBot chat backend's ``/chat`` endpoint."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

try:
    import requests
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError(
        "The requests package is required for the chat client. Install it with `uv pip install requests`."
    ) from exc

MIN_PORT = 1
MAX_PORT = 65_535
DEFAULT_PORT = 8080


class ChatError(RuntimeError):
    """Base class for failed chat exchanges."""


class NetworkError(ChatError):
    """The transport could not complete the exchange."""


class BadStatusError(ChatError):
    """The server answered with a non-success status."""

    def __init__(self, status: int, detail: str = "") -> None:
        message = f"chat request failed with status {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.status = status
        self.detail = detail


class MalformedResponseError(ChatError):
    """The body could not be parsed into ``{"response": str}``."""


@dataclass(frozen=True)
class ChatEndpoint:
    """Address of the chat backend."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    path: str = "/chat"

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must be provided")
        if isinstance(self.port, bool) or not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"port must be within [{MIN_PORT}, {MAX_PORT}]")
        if not self.path.startswith("/"):
            object.__setattr__(self, "path", f"/{self.path}")

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"


@dataclass(frozen=True)
class ChatClientConfig:
    """Transport options for :class:`ChatClient`.

    ``timeout`` is ``None`` by default, leaving timeouts to the transport.
    """

    timeout: Optional[float] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass(frozen=True)
class ChatReply:
    """Parsed answer from the chat backend."""

    response: str
    status: int = 200
    raw: Dict[str, object] = field(default_factory=dict)


class ChatClient:
    """Performs one request/response exchange per :meth:`send` call.

    ``send`` may run on several worker threads at once when exchanges
    overlap. ``requests.Session`` is not thread-safe, so each thread gets its
    own session from ``session_factory``.
    """

    def __init__(
        self,
        config: Optional[ChatClientConfig] = None,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.config = config or ChatClientConfig()
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def send(self, endpoint: ChatEndpoint, query: str) -> ChatReply:
        """POST ``{"query": query}`` to ``endpoint`` and return the reply."""

        headers = {"Content-Type": "application/json"}
        headers.update(self.config.headers)
        try:
            response = self._session().post(
                endpoint.url,
                json={"query": query},
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"could not reach {endpoint.url}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise BadStatusError(response.status_code, self._extract_error_detail(response))

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError("chat response body is not valid JSON") from exc
        return ChatReply(
            response=self._extract_response(data),
            status=response.status_code,
            raw=data,
        )

    def close(self) -> None:
        """Close every HTTP session opened by this client."""

        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    @staticmethod
    def _extract_response(data: object) -> str:
        if not isinstance(data, dict):
            raise MalformedResponseError("chat response must be a JSON object")
        content = data.get("response")
        if not isinstance(content, str):
            raise MalformedResponseError("chat response is missing a string `response` field")
        return content

    @staticmethod
    def _extract_error_detail(response: requests.Response) -> str:
        text = response.text or ""
        return text.strip()[:400]

    def __enter__(self) -> "ChatClient":  # pragma: no cover - convenience
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - convenience
        self.close()
