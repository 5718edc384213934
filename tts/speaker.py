"""Fire-and-forget speech output for bot replies."""

from __future__ import annotations

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, ContextManager, Optional, Protocol, Union

try:  # pragma: no cover - optional dependency guard
    import sounddevice as sd  # type: ignore
except (ImportError, OSError):  # pragma: no cover - PortAudio missing at runtime
    sd = None

from .kokoro_stream import KokoroStreamer

LOGGER = logging.getLogger(__name__)

_ASTERISK_RUN = re.compile(r"\*+")
_EMPTY_LIST_ENTRY = re.compile(r",(\s*,)+")
_WHITESPACE_RUN = re.compile(r"\s+")

BYTES_PER_SAMPLE = 2


class SpeechSynthesizer(Protocol):
    """Platform text-to-speech capability."""

    def speak(self, text: str) -> None:  # pragma: no cover - structural
        ...


def clean_for_speech(text: str) -> str:
    """Drop formatting-only characters that must not be vocalised.

    Runs of ``*`` (emphasis markers and the menu section separator) are removed,
    along with the empty list entries a removed separator leaves behind.
    """

    cleaned = _ASTERISK_RUN.sub("", text)
    cleaned = _EMPTY_LIST_ENTRY.sub(",", cleaned)
    return _WHITESPACE_RUN.sub(" ", cleaned).strip(" ,")


@dataclass(frozen=True)
class SpeakerConfig:
    """Playback options for :class:`KokoroSpeaker`."""

    device: Optional[Union[int, str]] = None
    channels: int = 1

    def __post_init__(self) -> None:
        if self.channels != 1:
            raise ValueError("Kokoro streams mono audio; channels must be 1")


OutputFactory = Callable[[int], ContextManager]


class KokoroSpeaker:
    """Speaks text through Kokoro-FastAPI and the default output device.

    Utterances are queued on a single worker thread, so overlapping calls play
    back one after another. Failures are logged and never reach the caller.
    """

    def __init__(
        self,
        streamer: KokoroStreamer,
        config: Optional[SpeakerConfig] = None,
        *,
        output_factory: Optional[OutputFactory] = None,
    ) -> None:
        if streamer.config.response_format.lower() != "pcm":
            raise ValueError("KokoroSpeaker plays raw PCM; set response_format='pcm'")
        self.streamer = streamer
        self.config = config or SpeakerConfig()
        if output_factory is None and sd is not None:
            output_factory = self._open_output
        self._output_factory = output_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="speaker")
        self._warned_unavailable = False

    @property
    def available(self) -> bool:
        return self._output_factory is not None

    def speak(self, text: str) -> None:
        cleaned = clean_for_speech(text)
        if not cleaned:
            return
        if not self.available:
            if not self._warned_unavailable:
                LOGGER.warning("speech output unavailable: sounddevice/PortAudio not installed")
                self._warned_unavailable = True
            return
        future = self._executor.submit(self._play, cleaned)
        future.add_done_callback(self._log_failure)

    def close(self) -> None:
        """Wait for queued utterances, then release the HTTP session."""

        self._executor.shutdown(wait=True)
        self.streamer.close()

    def _play(self, text: str) -> int:
        written = 0
        carry = b""
        with self._output_factory(self.streamer.config.sample_rate) as output:
            for chunk in self.streamer.stream_synthesis(text):
                if chunk.is_last:
                    break
                data = carry + chunk.data
                # Chunks may split a sample; hold the odd byte for the next write.
                usable = len(data) - (len(data) % BYTES_PER_SAMPLE)
                carry = data[usable:]
                if usable:
                    output.write(data[:usable])
                    written += usable
        return written

    def _open_output(self, sample_rate: int) -> ContextManager:
        return sd.RawOutputStream(
            samplerate=sample_rate,
            channels=self.config.channels,
            dtype="int16",
            device=self.config.device,
        )

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.warning("speech synthesis failed: %s", exc)
