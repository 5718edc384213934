"""Vosk-based offline transcription of captured speech segments."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

try:  # pragma: no cover - optional dependency guard
    from vosk import KaldiRecognizer, Model, SetLogLevel  # type: ignore
except ImportError:  # pragma: no cover - handled at runtime
    KaldiRecognizer = None
    Model = None
    SetLogLevel = None

BLANK_TRANSCRIPT_MARKERS = {
    "[BLANK_AUDIO]",
    "[BLANK]",
    "[SILENCE]",
    "[EMPTY]",
    "[NO_SPEECH]",
}

PUNCT_ONLY_CHARSET = set(".,!?¡¿:;-'\"()[]{} ")


def vosk_installed() -> bool:
    return Model is not None


def looks_like_model(root: Path) -> bool:
    return (root / "am").exists() and (root / "conf").exists()


def resolve_model_path(path: Path) -> Path:
    """Return the directory holding ``am/`` and ``conf/`` under ``path``."""

    candidate = path.expanduser().resolve()
    if not candidate.exists():
        raise FileNotFoundError(f"Vosk model path not found: {candidate}")
    if candidate.is_file():
        raise ValueError(f"Vosk model path must be a directory: {candidate}")
    if looks_like_model(candidate):
        return candidate

    subdirs = [p for p in candidate.iterdir() if p.is_dir()]
    if len(subdirs) == 1 and looks_like_model(subdirs[0]):
        return subdirs[0]

    raise FileNotFoundError(f"Vosk model directory missing expected files (am/conf): {candidate}")


def is_blank_transcript(text: str) -> bool:
    normalized = text.strip()
    if not normalized:
        return True
    if normalized.upper() in BLANK_TRANSCRIPT_MARKERS:
        return True
    return all(ch in PUNCT_ONLY_CHARSET for ch in normalized)


@dataclass(frozen=True)
class VoskConfig:
    """Runtime configuration for the Vosk recogniser."""

    model_path: Path
    sample_rate: int = 16_000
    enable_words: bool = False
    grammar: Optional[Sequence[str]] = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "model_path", resolve_model_path(self.model_path))
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be a positive integer")


@dataclass(frozen=True)
class TranscriptionResult:
    """Container for transcription outputs."""

    text: str
    segments: List[str]
    raw_json: Optional[dict]


class VoskTranscriber:
    """ASR adapter that uses the Vosk Python bindings."""

    def __init__(self, config: VoskConfig) -> None:
        self.config = config
        self._model: Optional[Model] = None
        self._model_lock = threading.Lock()

    def preload(self) -> None:
        """Load the model now instead of on the first utterance."""

        self._ensure_model()

    def transcribe_pcm(self, pcm: bytes, *, sample_rate: Optional[int] = None) -> TranscriptionResult:
        sr = sample_rate or self.config.sample_rate
        if sr != self.config.sample_rate:
            raise ValueError(
                f"VoskTranscriber expected sample_rate={self.config.sample_rate}, received {sr}"
            )
        recognizer = self._build_recognizer(sr)
        recognizer.AcceptWaveform(pcm)
        final_json = recognizer.FinalResult()
        try:
            data = json.loads(final_json) if final_json else {"text": ""}
        except json.JSONDecodeError as exc:  # pragma: no cover - corrupt output
            raise ValueError("Failed to decode Vosk JSON result") from exc
        text, segments = self._extract_text_and_segments(data)
        return TranscriptionResult(text=text, segments=segments, raw_json=data)

    def _ensure_model(self) -> Model:
        if self._model is not None:
            return self._model
        if Model is None:
            raise ImportError("vosk is not installed. Install it with `uv pip install vosk`.")
        with self._model_lock:
            if self._model is None:
                SetLogLevel(-1)
                self._model = Model(str(self.config.model_path))
            return self._model

    def _build_recognizer(self, sample_rate: int) -> KaldiRecognizer:
        model = self._ensure_model()
        if self.config.grammar is not None:
            recognizer = KaldiRecognizer(model, sample_rate, json.dumps(list(self.config.grammar)))
        else:
            recognizer = KaldiRecognizer(model, sample_rate)
        if self.config.enable_words and hasattr(recognizer, "SetWords"):
            recognizer.SetWords(True)
        return recognizer

    @staticmethod
    def _extract_text_and_segments(data: dict) -> tuple[str, List[str]]:
        text = (data.get("text") or "").strip()
        segments: List[str] = []
        words = data.get("result")
        if isinstance(words, list):
            accumulated = [entry.get("word") for entry in words if isinstance(entry.get("word"), str)]
            if accumulated:
                segments.append(" ".join(accumulated).strip())
        if not segments and text:
            segments.append(text)
        return text, segments
