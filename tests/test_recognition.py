"""Tests for the recognition adapter lifecycle and error taxonomy."""

from __future__ import annotations

import asyncio

import pytest

from controller import (
    RecognitionAdapter,
    RecognitionEnded,
    RecognitionFailure,
    RecognitionNoMicrophone,
    RecognitionNoSpeech,
    RecognitionOther,
    RecognitionPermissionDenied,
    RecognitionResult,
    RecognitionStarted,
    RecognitionState,
    RecognitionUnsupported,
    ScriptedRecognitionEngine,
    describe_recognition_error,
    recognition_error_for,
)


class EventRecorder:
    def __init__(self, adapter: RecognitionAdapter) -> None:
        self.adapter = adapter
        self.events = []
        self.states = []

    def __call__(self, event) -> None:
        self.events.append(event)
        self.states.append(self.adapter.state)

    @property
    def kinds(self):
        return [type(event) for event in self.events]


class BrokenEngine:
    def available(self) -> bool:
        return True

    async def recognize(self) -> str:
        raise OSError("device vanished")


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        "code, expected_type, message",
        [
            ("no-speech", RecognitionNoSpeech, "no voice detected"),
            ("audio-capture", RecognitionNoMicrophone, "no microphone detected"),
            ("not-allowed", RecognitionPermissionDenied, "microphone permission denied"),
            ("network", RecognitionOther, "recognition error: network"),
        ],
    )
    def test_code_mapping(self, code, expected_type, message):
        error = recognition_error_for(code)

        assert isinstance(error, expected_type)
        assert error.code == code
        assert error.user_message == message
        assert describe_recognition_error(code) == message

    def test_unsupported_message(self):
        error = RecognitionUnsupported()

        assert error.code == "unsupported"
        assert str(error) == "speech recognition is not supported on this platform"


class TestAdapterLifecycle:
    @pytest.mark.asyncio
    async def test_success_emits_started_result_ended(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine(["hola"]))
        recorder = EventRecorder(adapter)

        task = adapter.start(recorder)
        assert recorder.kinds == [RecognitionStarted]
        assert adapter.state is RecognitionState.LISTENING

        await task

        assert recorder.kinds == [RecognitionStarted, RecognitionResult, RecognitionEnded]
        assert recorder.events[1].transcript == "hola"
        assert recorder.states == [
            RecognitionState.LISTENING,
            RecognitionState.SETTLING,
            RecognitionState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_error_emits_failure_then_ended(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine([RecognitionPermissionDenied()]))
        recorder = EventRecorder(adapter)

        await adapter.start(recorder)

        assert recorder.kinds == [RecognitionStarted, RecognitionFailure, RecognitionEnded]
        assert recorder.events[1].error.code == "not-allowed"
        assert adapter.state is RecognitionState.IDLE

    @pytest.mark.asyncio
    async def test_exhausted_script_reports_no_speech(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine())
        recorder = EventRecorder(adapter)

        await adapter.start(recorder)

        assert isinstance(recorder.events[1].error, RecognitionNoSpeech)

    @pytest.mark.asyncio
    async def test_unexpected_engine_exception_becomes_failure(self):
        adapter = RecognitionAdapter(BrokenEngine())
        recorder = EventRecorder(adapter)

        await adapter.start(recorder)

        assert recorder.kinds == [RecognitionStarted, RecognitionFailure, RecognitionEnded]
        assert recorder.events[1].error.code == "aborted"

    @pytest.mark.asyncio
    async def test_start_while_active_is_ignored(self):
        engine = ScriptedRecognitionEngine(["uno", "dos"])
        adapter = RecognitionAdapter(engine)
        recorder = EventRecorder(adapter)

        task = adapter.start(recorder)
        assert adapter.start(recorder) is None
        await task

        assert engine.calls == 1
        assert recorder.kinds.count(RecognitionStarted) == 1

    @pytest.mark.asyncio
    async def test_sessions_can_run_back_to_back(self):
        engine = ScriptedRecognitionEngine(["uno", "dos"])
        adapter = RecognitionAdapter(engine)
        recorder = EventRecorder(adapter)

        await adapter.start(recorder)
        await adapter.start(recorder)

        transcripts = [e.transcript for e in recorder.events if isinstance(e, RecognitionResult)]
        assert transcripts == ["uno", "dos"]
        assert recorder.kinds.count(RecognitionEnded) == 2

    @pytest.mark.asyncio
    async def test_sink_failure_still_returns_to_idle(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine(["hola"]))
        seen = []

        def sink(event):
            seen.append(event)
            if isinstance(event, RecognitionResult):
                raise RuntimeError("consumer crashed")

        task = adapter.start(sink)
        with pytest.raises(RuntimeError):
            await task

        assert adapter.state is RecognitionState.IDLE


class TestUnsupported:
    @pytest.mark.asyncio
    async def test_missing_engine_raises_synchronously(self):
        adapter = RecognitionAdapter(None)
        recorder = EventRecorder(adapter)

        with pytest.raises(RecognitionUnsupported):
            adapter.start(recorder)

        assert recorder.events == []
        assert adapter.state is RecognitionState.IDLE

    @pytest.mark.asyncio
    async def test_unavailable_engine_raises(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine(available=False))

        assert adapter.supported is False
        with pytest.raises(RecognitionUnsupported):
            adapter.start(lambda event: None)

    def test_start_needs_a_running_loop(self):
        adapter = RecognitionAdapter(ScriptedRecognitionEngine(["hola"]))

        with pytest.raises(RuntimeError):
            adapter.start(lambda event: None)
        assert adapter.state is RecognitionState.IDLE


@pytest.mark.asyncio
async def test_scripted_engine_yields_to_the_loop():
    engine = ScriptedRecognitionEngine(["hola"])

    result = await asyncio.wait_for(engine.recognize(), timeout=1)

    assert result == "hola"
    assert engine.calls == 1
