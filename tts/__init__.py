"""Text-to-speech output backed by Kokoro-FastAPI streaming."""

from .kokoro_stream import KokoroConfig, KokoroStreamer, SynthesisChunk, SynthesisError
from .speaker import KokoroSpeaker, SpeakerConfig, SpeechSynthesizer, clean_for_speech

__all__ = [
    "KokoroConfig",
    "KokoroStreamer",
    "SynthesisChunk",
    "SynthesisError",
    "KokoroSpeaker",
    "SpeakerConfig",
    "SpeechSynthesizer",
    "clean_for_speech",
]
