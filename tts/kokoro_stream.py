"""Streaming client for Kokoro-FastAPI's OpenAI-compatible speech endpoint."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

try:
    import requests
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError(
        "The requests package is required for the Kokoro TTS client. Install it with `uv pip install requests`."
    ) from exc


_ACCEPT_HEADER_MAP = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "pcm": "application/octet-stream",
}

# Kokoro language codes keyed by the primary subtag of a locale.
_LANG_CODES = {
    "es": "e",
    "en": "a",
    "fr": "f",
    "it": "i",
    "pt": "p",
}


class SynthesisError(RuntimeError):
    """Raised when Kokoro does not return audio for a request."""


@dataclass(frozen=True)
class KokoroConfig:
    """Runtime configuration for streaming against Kokoro-FastAPI."""

    base_url: str = "http://127.0.0.1:8880/v1"
    endpoint: str = "/audio/speech"
    model: str = "kokoro"
    voice: str = "ef_dora"
    locale: str = "es-CR"
    response_format: str = "pcm"
    sample_rate: int = 24_000
    speed: Optional[float] = None
    stream_chunk_bytes: int = 4_096
    connect_timeout: float = 5.0
    read_timeout: float = 60.0
    extra_payload: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be provided")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

        if not self.endpoint:
            raise ValueError("endpoint must be provided")
        if not self.endpoint.startswith("/"):
            object.__setattr__(self, "endpoint", f"/{self.endpoint}")

        if not self.model:
            raise ValueError("model must be provided")
        if self.response_format.lower() not in _ACCEPT_HEADER_MAP:
            raise ValueError(f"response_format must be one of {sorted(_ACCEPT_HEADER_MAP)}")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if self.stream_chunk_bytes <= 0:
            raise ValueError("stream_chunk_bytes must be positive")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ValueError("timeouts must be positive")

    @property
    def lang_code(self) -> Optional[str]:
        primary = self.locale.split("-", 1)[0].lower()
        return _LANG_CODES.get(primary)

    def build_payload(self, text: str) -> Dict[str, object]:
        if not text or not text.strip():
            raise ValueError("text to synthesise must be non-empty")
        payload: Dict[str, object] = dict(self.extra_payload)
        payload.setdefault("model", self.model)
        payload["input"] = text
        payload.setdefault("voice", self.voice)
        payload.setdefault("response_format", self.response_format)
        if self.lang_code:
            payload.setdefault("lang_code", self.lang_code)
        if self.speed is not None:
            payload.setdefault("speed", self.speed)
        return payload

    def build_url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def accept_header(self) -> str:
        return _ACCEPT_HEADER_MAP[self.response_format.lower()]


@dataclass(frozen=True)
class SynthesisChunk:
    """A chunk of streamed audio, or the terminal signal when ``is_last``."""

    data: bytes
    sequence: int
    is_last: bool
    total_bytes: int
    first_chunk_latency_s: Optional[float] = None
    elapsed_s: Optional[float] = None


class KokoroStreamer:
    """Client for streaming audio from Kokoro-FastAPI."""

    def __init__(self, config: KokoroConfig) -> None:
        self.config = config
        self._session = requests.Session()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "KokoroStreamer":  # pragma: no cover - convenience
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - convenience
        self.close()

    def stream_synthesis(self, text: str) -> Iterator[SynthesisChunk]:
        """Yield audio chunks as soon as Kokoro produces them."""

        payload = self.config.build_payload(text)
        start_time = time.monotonic()
        try:
            response = self._session.post(
                self.config.build_url(),
                json=payload,
                headers={"accept": self.config.accept_header()},
                stream=True,
                timeout=(self.config.connect_timeout, self.config.read_timeout),
            )
        except requests.RequestException as exc:
            raise SynthesisError(f"Kokoro TTS request failed: {exc}") from exc

        try:
            if response.status_code >= 400:
                raise SynthesisError(
                    f"Kokoro TTS request failed with status {response.status_code}: "
                    f"{self._extract_error_detail(response)}"
                )

            content_type = response.headers.get("Content-Type")
            if content_type and "application/json" in content_type.lower():
                raise SynthesisError(
                    f"Kokoro TTS returned JSON payload instead of audio: {self._extract_error_detail(response)}"
                )

            sequence = 0
            total_bytes = 0
            first_chunk_latency: Optional[float] = None
            for raw_chunk in response.iter_content(chunk_size=self.config.stream_chunk_bytes):
                if not raw_chunk:
                    continue
                sequence += 1
                total_bytes += len(raw_chunk)
                if first_chunk_latency is None:
                    first_chunk_latency = time.monotonic() - start_time
                yield SynthesisChunk(
                    data=raw_chunk,
                    sequence=sequence,
                    is_last=False,
                    total_bytes=total_bytes,
                    first_chunk_latency_s=first_chunk_latency if sequence == 1 else None,
                )

            yield SynthesisChunk(
                data=b"",
                sequence=sequence + 1,
                is_last=True,
                total_bytes=total_bytes,
                first_chunk_latency_s=first_chunk_latency,
                elapsed_s=time.monotonic() - start_time,
            )
        finally:
            response.close()

    @staticmethod
    def _extract_error_detail(response: requests.Response) -> str:
        try:
            return str(response.json())
        except ValueError:
            return response.text[:400]
