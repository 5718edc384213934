"""Configuration dataclasses and the optional TOML loader."""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from chat import ChatClientConfig
from chat.chat_client import DEFAULT_PORT, MAX_PORT, MIN_PORT
from tts import KokoroConfig, SpeakerConfig

T = TypeVar("T")


class ConfigError(RuntimeError):
    """Raised when the TOML configuration is invalid."""


@dataclass(frozen=True)
class SessionControllerConfig:
    """Configuration knobs for :class:`SessionController`."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    single_flight: bool = False
    log_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must be provided")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError("port must be an integer")
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"port must be within [{MIN_PORT}, {MAX_PORT}]")
        if self.log_path is not None and not isinstance(self.log_path, Path):
            object.__setattr__(self, "log_path", Path(self.log_path))


@dataclass(frozen=True)
class RecognitionConfig:
    """Microphone capture, VAD and Vosk options for live recognition."""

    model_path: Optional[Path] = None
    language: str = "es-ES"
    sample_rate: int = 16_000
    device: Optional[Union[int, str]] = None
    no_speech_timeout: float = 8.0
    max_utterance_seconds: float = 15.0
    vad_aggressiveness: int = 2
    vad_frame_ms: int = 30
    vad_start_frames: int = 3
    vad_stop_frames: int = 25
    vad_preroll_frames: int = 2

    def __post_init__(self) -> None:
        if self.model_path is not None and not isinstance(self.model_path, Path):
            object.__setattr__(self, "model_path", Path(self.model_path))
        if not self.language:
            raise ValueError("language must be provided")
        if self.no_speech_timeout <= 0 or self.max_utterance_seconds <= 0:
            raise ValueError("timeouts must be positive")


@dataclass(frozen=True)
class AppConfig:
    controller: SessionControllerConfig = field(default_factory=SessionControllerConfig)
    chat: ChatClientConfig = field(default_factory=ChatClientConfig)
    speech: KokoroConfig = field(default_factory=KokoroConfig)
    speaker: SpeakerConfig = field(default_factory=SpeakerConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)


_SECTIONS: Dict[str, Type[Any]] = {
    "controller": SessionControllerConfig,
    "chat": ChatClientConfig,
    "speech": KokoroConfig,
    "speaker": SpeakerConfig,
    "recognition": RecognitionConfig,
}


def _expand_path(raw: Optional[str], *, base: Path) -> Optional[Path]:
    if not raw:
        return None
    expanded = Path(raw).expanduser()
    if not expanded.is_absolute():
        expanded = (base / expanded).resolve()
    return expanded


def _build_section(cls: Type[T], name: str, raw: Dict[str, Any], *, base: Path) -> T:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"[{name}] has unknown keys: {', '.join(unknown)}")

    values = dict(raw)
    for key in ("log_path", "model_path"):
        if key in values and not isinstance(values[key], Path):
            if not isinstance(values[key], str):
                raise ConfigError(f"[{name}] {key} must be a string path.")
            values[key] = _expand_path(values[key], base=base)
    try:
        return cls(**values)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[{name}] is invalid: {exc}") from exc


def load_config(path: Optional[Path] = None, *, overrides: Optional[Mapping[str, Mapping[str, Any]]] = None) -> AppConfig:
    """Read ``path`` (if given) and apply per-section ``overrides`` on top.

    Relative paths inside the file resolve against the file's directory.
    """

    data: Dict[str, Any] = {}
    base_dir = Path.cwd()
    if path is not None:
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        base_dir = path.parent.resolve()
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Failed to parse {path}: {exc}") from exc

    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")

    sections: Dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        raw = data.get(name, {})
        if not isinstance(raw, dict):
            raise ConfigError(f"[{name}] must be a table.")
        raw = dict(raw)
        if overrides and name in overrides:
            raw.update({k: v for k, v in overrides[name].items() if v is not None})
        sections[name] = _build_section(cls, name, raw, base=base_dir)
    return AppConfig(**sections)
