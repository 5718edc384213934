"""Tests for VAD segmentation, Vosk helpers and the microphone engine.

A fake VAD classifies frames by their first byte, so no audio hardware or
model is needed.
"""

from __future__ import annotations

from typing import List, Optional

import pytest

pytest.importorskip("webrtcvad")

from asr import MicrophoneRecognitionEngine, SpeechSegment, SpeechStartEvent, VADConfig, VADStream  # noqa: E402
from asr.vosk_transcriber import TranscriptionResult, is_blank_transcript, resolve_model_path  # noqa: E402
from controller import (  # noqa: E402
    RecognitionConfig,
    RecognitionNoMicrophone,
    RecognitionNoSpeech,
    RecognitionOther,
    RecognitionPermissionDenied,
)

FRAME_BYTES = VADConfig().frame_bytes
SPEECH = b"\x01" * FRAME_BYTES
SILENCE = b"\x00" * FRAME_BYTES


class FirstByteVad:
    def is_speech(self, frame: bytes, sample_rate: int) -> bool:
        return frame[:1] == b"\x01"


class FakeSource:
    def __init__(self, frames: List[bytes], tail: bytes = SILENCE) -> None:
        self.frames = list(frames)
        self.tail = tail
        self.reads = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self, frames: int):
        self.reads += 1
        data = self.frames.pop(0) if self.frames else self.tail
        return data, False


class FakeTranscriber:
    def __init__(self, text: str = "hola", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.received: List[bytes] = []

    def transcribe_pcm(self, pcm: bytes, *, sample_rate: Optional[int] = None) -> TranscriptionResult:
        self.received.append(pcm)
        if self.error is not None:
            raise self.error
        return TranscriptionResult(text=self.text, segments=[self.text], raw_json=None)


def make_engine(frames, transcriber=None, *, tail=SILENCE, **overrides):
    settings = dict(vad_stop_frames=3, vad_preroll_frames=0, no_speech_timeout=0.05, max_utterance_seconds=5.0)
    settings.update(overrides)
    source = FakeSource(frames, tail)
    engine = MicrophoneRecognitionEngine(
        RecognitionConfig(**settings),
        transcriber=transcriber or FakeTranscriber(),
        input_factory=lambda sample_rate, block_frames: source,
        vad=FirstByteVad(),
    )
    return engine, source


class TestVADStream:
    def test_segment_cut_after_trailing_silence(self):
        stream = VADStream(VADConfig(stop_trigger_frames=2), preroll_frames=0, vad=FirstByteVad())

        events = stream.add_audio(SILENCE + SPEECH * 3 + SILENCE * 2)

        assert isinstance(events[0], SpeechStartEvent)
        assert events[0].start_byte == FRAME_BYTES
        segment = events[1]
        assert isinstance(segment, SpeechSegment)
        assert segment.pcm == SPEECH * 3
        assert segment.duration == pytest.approx(0.09)
        assert not stream.active

    def test_short_burst_does_not_open_segment(self):
        stream = VADStream(VADConfig(), vad=FirstByteVad())

        assert list(stream.add_audio(SPEECH * 2 + SILENCE)) == []
        assert not stream.active

    def test_force_close_returns_open_segment(self):
        stream = VADStream(VADConfig(), preroll_frames=1, vad=FirstByteVad())
        stream.add_audio(SILENCE + SPEECH * 4)

        segment = stream.force_close()

        assert segment is not None
        assert segment.pcm == SILENCE + SPEECH * 4
        assert stream.force_close() is None

    def test_partial_frames_are_buffered(self):
        stream = VADStream(VADConfig(start_trigger_frames=1), preroll_frames=0, vad=FirstByteVad())

        assert list(stream.add_audio(SPEECH[:100])) == []
        events = stream.add_audio(SPEECH[100:])

        assert isinstance(events[0], SpeechStartEvent)

    @pytest.mark.parametrize(
        "kwargs",
        [{"sample_rate": 22050}, {"frame_duration_ms": 25}, {"aggressiveness": 4}, {"stop_trigger_frames": 0}],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            VADConfig(**kwargs)


class TestVoskHelpers:
    @pytest.mark.parametrize("text", ["", "   ", "[BLANK_AUDIO]", "¿?", "..."])
    def test_blank_transcripts(self, text):
        assert is_blank_transcript(text)

    def test_real_transcript_is_not_blank(self):
        assert not is_blank_transcript("quiero el menú")

    def test_model_found_in_single_subdirectory(self, tmp_path):
        model = tmp_path / "vosk-model-small-es-0.42"
        (model / "am").mkdir(parents=True)
        (model / "conf").mkdir()

        assert resolve_model_path(tmp_path) == model.resolve()

    def test_missing_model(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            resolve_model_path(tmp_path / "nothing")


class TestMicrophoneEngine:
    @pytest.mark.asyncio
    async def test_transcribes_first_utterance(self):
        transcriber = FakeTranscriber(" quiero el menú ")
        engine, _ = make_engine([SILENCE, SPEECH, SPEECH, SPEECH, SILENCE, SILENCE, SILENCE], transcriber)

        assert engine.available()
        assert await engine.recognize() == "quiero el menú"
        assert transcriber.received == [SPEECH * 3]

    @pytest.mark.asyncio
    async def test_silence_reports_no_speech(self):
        engine, source = make_engine([])

        with pytest.raises(RecognitionNoSpeech):
            await engine.recognize()
        assert source.reads > 0

    @pytest.mark.asyncio
    async def test_blank_transcript_reports_no_speech(self):
        engine, _ = make_engine([SPEECH] * 3 + [SILENCE] * 3, FakeTranscriber("[BLANK_AUDIO]"))

        with pytest.raises(RecognitionNoSpeech):
            await engine.recognize()

    @pytest.mark.asyncio
    async def test_transcriber_failure_maps_to_other(self):
        engine, _ = make_engine([SPEECH] * 3 + [SILENCE] * 3, FakeTranscriber(error=RuntimeError("model")))

        with pytest.raises(RecognitionOther) as excinfo:
            await engine.recognize()
        assert excinfo.value.code == "transcription-failed"

    @pytest.mark.asyncio
    async def test_long_utterance_is_cut(self):
        transcriber = FakeTranscriber()
        engine, _ = make_engine([], transcriber, tail=SPEECH, max_utterance_seconds=0.05)

        assert await engine.recognize() == "hola"
        assert transcriber.received[0].startswith(SPEECH)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, expected",
        [
            (PermissionError("denied"), RecognitionPermissionDenied),
            (OSError("no device"), RecognitionNoMicrophone),
        ],
    )
    async def test_capture_errors(self, error, expected):
        def failing_input(sample_rate, block_frames):
            raise error

        engine = MicrophoneRecognitionEngine(
            RecognitionConfig(),
            transcriber=FakeTranscriber(),
            input_factory=failing_input,
            vad=FirstByteVad(),
        )

        with pytest.raises(expected):
            await engine.recognize()

    def test_unavailable_without_model(self):
        engine = MicrophoneRecognitionEngine(
            RecognitionConfig(),
            input_factory=lambda sample_rate, block_frames: FakeSource([]),
            vad=FirstByteVad(),
        )

        assert engine.available() is False
