"""Incremental WebRTC VAD segmenter for continuous microphone PCM."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

try:
    import webrtcvad  # type: ignore
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError(
        "webrtcvad is required for live recognition. Install it with `uv pip install webrtcvad-wheels`."
    ) from exc

BYTES_PER_SAMPLE = 2


@dataclass(frozen=True)
class VADConfig:
    """Runtime configuration for :class:`VADStream`.

    Attributes:
        sample_rate: PCM sample rate in Hz. WebRTC VAD supports 8000, 16000,
            32000, and 48000.
        frame_duration_ms: Frame size in milliseconds (10, 20 or 30).
        aggressiveness: VAD aggressiveness level (0..3).
        start_trigger_frames: Consecutive speech frames that open a segment.
        stop_trigger_frames: Consecutive non-speech frames that close it.
    """

    sample_rate: int = 16_000
    frame_duration_ms: int = 30
    aggressiveness: int = 2
    start_trigger_frames: int = 3
    stop_trigger_frames: int = 25

    def __post_init__(self) -> None:
        if self.sample_rate not in (8000, 16000, 32000, 48000):
            raise ValueError("sample_rate must be one of 8000, 16000, 32000, 48000")
        if self.frame_duration_ms not in (10, 20, 30):
            raise ValueError("frame_duration_ms must be 10, 20, or 30")
        if not (0 <= self.aggressiveness <= 3):
            raise ValueError("aggressiveness must be between 0 and 3")
        if self.start_trigger_frames < 1:
            raise ValueError("start_trigger_frames must be >= 1")
        if self.stop_trigger_frames < 1:
            raise ValueError("stop_trigger_frames must be >= 1")

    @property
    def frame_bytes(self) -> int:
        return int(self.sample_rate * self.frame_duration_ms / 1000) * BYTES_PER_SAMPLE


@dataclass(frozen=True)
class SpeechStartEvent:
    """VAD has latched onto speech."""

    start_time: float
    start_byte: int


@dataclass(frozen=True)
class SpeechSegment:
    """Completed speech segment cut from the rolling PCM buffer."""

    start_time: float
    end_time: float
    pcm: bytes

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


VADEvent = Union[SpeechStartEvent, SpeechSegment]


class VADStream:
    """Stateful wrapper around WebRTC VAD for continuous streams."""

    def __init__(self, config: VADConfig, *, preroll_frames: int = 2, vad=None) -> None:
        self.config = config
        self._vad = vad if vad is not None else webrtcvad.Vad(config.aggressiveness)
        self._frame_bytes = config.frame_bytes
        self._frame_duration_s = config.frame_duration_ms / 1000.0
        self._preroll_frames = max(0, preroll_frames)
        self.reset()

    @property
    def active(self) -> bool:
        return self._active

    def reset(self) -> None:
        self._buffer = bytearray()
        self._processed_bytes = 0
        self._cursor = 0
        self._active = False
        self._start_frame = 0
        self._speech_run = 0
        self._silence_run = 0

    def add_audio(self, pcm: bytes) -> Sequence[VADEvent]:
        """Process PCM bytes and return any speech events produced."""

        if not pcm:
            return ()

        self._buffer.extend(pcm)
        events: List[VADEvent] = []

        while self._cursor + self._frame_bytes <= len(self._buffer):
            frame = bytes(self._buffer[self._cursor : self._cursor + self._frame_bytes])
            frame_index = (self._processed_bytes + self._cursor) // self._frame_bytes

            is_speech = self._vad.is_speech(frame, self.config.sample_rate)
            if is_speech:
                self._speech_run += 1
                self._silence_run = 0
            else:
                self._speech_run = 0
                self._silence_run += 1

            if not self._active:
                if is_speech and self._speech_run >= self.config.start_trigger_frames:
                    self._active = True
                    tentative_start = frame_index - self.config.start_trigger_frames + 1
                    self._start_frame = max(0, tentative_start - self._preroll_frames)
                    events.append(
                        SpeechStartEvent(
                            start_time=self._start_frame * self._frame_duration_s,
                            start_byte=self._start_frame * self._frame_bytes,
                        )
                    )
            elif not is_speech and self._silence_run >= self.config.stop_trigger_frames:
                end_frame = frame_index - self.config.stop_trigger_frames + 1
                if end_frame < self._start_frame:
                    end_frame = frame_index
                end_byte = end_frame * self._frame_bytes
                events.append(self._slice_segment(self._start_frame * self._frame_bytes, end_byte))
                self._reset_after_segment(end_byte)

            self._cursor += self._frame_bytes

        if not self._active:
            # Keep only preroll context while idle.
            max_buffer = self._frame_bytes * (100 + self._preroll_frames)
            if len(self._buffer) > max_buffer:
                trim = len(self._buffer) - max_buffer
                del self._buffer[:trim]
                self._processed_bytes += trim
                self._cursor = max(0, self._cursor - trim)

        return events

    def force_close(self) -> Optional[SpeechSegment]:
        """Close an active segment at the current cursor, if any."""

        if not self._active:
            return None
        end_byte = self._processed_bytes + self._cursor
        segment = self._slice_segment(self._start_frame * self._frame_bytes, end_byte)
        self._reset_after_segment(end_byte)
        return segment

    def _slice_segment(self, start_byte: int, end_byte: int) -> SpeechSegment:
        start_rel = max(0, start_byte - self._processed_bytes)
        end_rel = min(len(self._buffer), end_byte - self._processed_bytes)
        pcm = bytes(self._buffer[start_rel:end_rel])
        start_time = (start_byte / BYTES_PER_SAMPLE) / self.config.sample_rate
        end_time = (end_byte / BYTES_PER_SAMPLE) / self.config.sample_rate
        return SpeechSegment(start_time=start_time, end_time=end_time, pcm=pcm)

    def _reset_after_segment(self, end_byte: int) -> None:
        end_rel = max(0, end_byte - self._processed_bytes)
        del self._buffer[:end_rel]
        self._processed_bytes += end_rel
        self._cursor = max(0, self._cursor - end_rel)
        self._active = False
        self._speech_run = 0
        self._silence_run = 0
        self._start_frame = 0
