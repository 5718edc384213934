"""Live speech recognition: microphone capture, WebRTC VAD and Vosk."""

from .microphone import MicrophoneRecognitionEngine
from .vad_stream import SpeechSegment, SpeechStartEvent, VADConfig, VADStream
from .vosk_transcriber import TranscriptionResult, VoskConfig, VoskTranscriber, is_blank_transcript

__all__ = [
    "MicrophoneRecognitionEngine",
    "SpeechSegment",
    "SpeechStartEvent",
    "VADConfig",
    "VADStream",
    "TranscriptionResult",
    "VoskConfig",
    "VoskTranscriber",
    "is_blank_transcript",
]
