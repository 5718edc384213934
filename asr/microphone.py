"""Live speech recognition from the default microphone.

Captures 16-bit mono PCM with ``sounddevice``, cuts the first utterance with
WebRTC VAD and transcribes it with Vosk. Implements the ``RecognitionEngine``
protocol consumed by :class:`controller.RecognitionAdapter`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, ContextManager, Optional

try:  # pragma: no cover - optional dependency guard
    import sounddevice as sd  # type: ignore
except (ImportError, OSError):  # pragma: no cover - PortAudio missing at runtime
    sd = None

from controller.config import RecognitionConfig
from controller.recognition import (
    RecognitionNoMicrophone,
    RecognitionNoSpeech,
    RecognitionOther,
    RecognitionPermissionDenied,
)

from .vad_stream import BYTES_PER_SAMPLE, SpeechSegment, SpeechStartEvent, VADConfig, VADStream
from .vosk_transcriber import VoskConfig, VoskTranscriber, is_blank_transcript, vosk_installed

LOGGER = logging.getLogger(__name__)

InputFactory = Callable[[int, int], ContextManager]

_CAPTURE_ERRORS = (OSError, ValueError) + ((sd.PortAudioError,) if sd is not None else ())


class MicrophoneRecognitionEngine:
    """Blocking capture and transcription run off the event loop."""

    def __init__(
        self,
        config: RecognitionConfig,
        *,
        transcriber: Optional[VoskTranscriber] = None,
        input_factory: Optional[InputFactory] = None,
        vad=None,
    ) -> None:
        self.config = config
        self.vad_config = VADConfig(
            sample_rate=config.sample_rate,
            frame_duration_ms=config.vad_frame_ms,
            aggressiveness=config.vad_aggressiveness,
            start_trigger_frames=config.vad_start_frames,
            stop_trigger_frames=config.vad_stop_frames,
        )
        self._vad = vad
        self._transcriber = transcriber
        if input_factory is None and sd is not None:
            input_factory = self._open_input
        self._input_factory = input_factory

    def available(self) -> bool:
        if self._input_factory is None:
            return False
        if self._transcriber is not None:
            return True
        if not vosk_installed() or self.config.model_path is None:
            return False
        try:
            vosk_cfg = VoskConfig(model_path=self.config.model_path, sample_rate=self.config.sample_rate)
        except (FileNotFoundError, ValueError) as exc:
            LOGGER.warning("recognition model unusable: %s", exc)
            return False
        LOGGER.info("using Vosk model %s (%s)", vosk_cfg.model_path, self.config.language)
        self._transcriber = VoskTranscriber(vosk_cfg)
        return True

    async def recognize(self) -> str:
        return await asyncio.to_thread(self._capture_and_transcribe)

    def _capture_and_transcribe(self) -> str:
        segment = self._capture_segment()
        if segment is None or not segment.pcm:
            raise RecognitionNoSpeech()
        try:
            result = self._transcriber.transcribe_pcm(segment.pcm, sample_rate=self.config.sample_rate)
        except (ImportError, RuntimeError, ValueError) as exc:
            raise RecognitionOther("transcription-failed") from exc
        if is_blank_transcript(result.text):
            raise RecognitionNoSpeech()
        return result.text.strip()

    def _capture_segment(self) -> Optional[SpeechSegment]:
        cfg = self.config
        stream = VADStream(self.vad_config, preroll_frames=cfg.vad_preroll_frames, vad=self._vad)
        block_frames = self.vad_config.frame_bytes // BYTES_PER_SAMPLE
        started_at = time.monotonic()
        speech_started_at: Optional[float] = None
        try:
            with self._input_factory(cfg.sample_rate, block_frames) as source:
                while True:
                    data, _overflowed = source.read(block_frames)
                    for event in stream.add_audio(bytes(data)):
                        if isinstance(event, SpeechStartEvent):
                            speech_started_at = time.monotonic()
                        elif isinstance(event, SpeechSegment):
                            return event
                    now = time.monotonic()
                    if speech_started_at is None:
                        if now - started_at > cfg.no_speech_timeout:
                            return None
                    elif now - speech_started_at > cfg.max_utterance_seconds:
                        return stream.force_close()
        except PermissionError as exc:
            raise RecognitionPermissionDenied() from exc
        except _CAPTURE_ERRORS as exc:
            raise RecognitionNoMicrophone() from exc

    def _open_input(self, sample_rate: int, block_frames: int) -> ContextManager:
        return sd.RawInputStream(
            samplerate=sample_rate,
            blocksize=block_frames,
            channels=1,
            dtype="int16",
            device=self.config.device,
        )
