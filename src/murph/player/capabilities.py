"""Audio output and speech recognition capability interfaces.

The playback controller only talks to these protocols. Real engines live in
``murph.player.engines``; the null implementations below are controllable
stand-ins for tests and for running without audio hardware.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from .controller import AudioClip

TimeUpdateListener = Callable[[float, Optional[float]], None]
EndedListener = Callable[[], None]
TranscriptListener = Callable[[str], None]
RecognitionEndListener = Callable[[], None]


class AudioOutputError(RuntimeError):
    """Raised when an audio clip cannot be decoded or played."""


class RecognitionError(RuntimeError):
    """Raised when the speech-input engine is unavailable or fails."""


RecognitionErrorListener = Callable[[RecognitionError], None]


class AudioOutput(Protocol):
    """Interface for a seekable, rate-adjustable audio element.

    Listeners are always invoked on the event loop thread.
    """

    def set_listeners(
        self,
        on_time_update: TimeUpdateListener,
        on_ended: EndedListener,
    ) -> None:
        ...

    def load(self, clip: "AudioClip") -> None:
        """Attach a clip, positioned at the start.

        Raises:
            AudioOutputError: If the clip cannot be decoded
        """
        ...

    def unload(self) -> None:
        """Halt playback and release the current clip. Safe with nothing loaded."""
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def stop(self) -> None:
        """Halt playback and rewind to the start."""
        ...

    def set_rate(self, rate: float) -> None:
        ...

    @property
    def position(self) -> float:
        """Current playback position in seconds."""
        ...

    @property
    def duration(self) -> Optional[float]:
        """Clip duration in seconds, or None when unknown."""
        ...


class SpeechRecognizer(Protocol):
    """Interface for a continuous speech-recognition listener."""

    def set_listeners(
        self,
        on_result: TranscriptListener,
        on_end: RecognitionEndListener,
        on_error: RecognitionErrorListener,
    ) -> None:
        ...

    def start(self) -> None:
        """Begin listening.

        Raises:
            RecognitionError: If the engine is unavailable or fails to start
        """
        ...

    def stop(self) -> None:
        ...


def _ignore_time_update(position: float, duration: Optional[float]) -> None:
    return None


def _ignore() -> None:
    return None


def _ignore_transcript(text: str) -> None:
    return None


def _ignore_error(error: RecognitionError) -> None:
    return None


class NullAudioOutput:
    """Silent audio output that only tracks what it was asked to do.

    ``advance`` and ``finish`` let tests drive position updates and the
    end-of-media signal by hand.
    """

    def __init__(self, duration: Optional[float] = 10.0, fail_on_load: bool = False) -> None:
        self._duration = duration
        self._fail_on_load = fail_on_load
        self._position = 0.0
        self._on_time_update: TimeUpdateListener = _ignore_time_update
        self._on_ended: EndedListener = _ignore
        self.clip: Optional["AudioClip"] = None
        self.rate = 1.0
        self.is_playing = False
        self.calls: list[str] = []

    def set_listeners(
        self,
        on_time_update: TimeUpdateListener,
        on_ended: EndedListener,
    ) -> None:
        self._on_time_update = on_time_update
        self._on_ended = on_ended

    def load(self, clip: "AudioClip") -> None:
        self.calls.append("load")
        if self._fail_on_load:
            raise AudioOutputError("Unable to decode audio")
        self.clip = clip
        self._position = 0.0
        self.is_playing = False

    def unload(self) -> None:
        self.calls.append("unload")
        self.clip = None
        self._position = 0.0
        self.is_playing = False

    def play(self) -> None:
        self.calls.append("play")
        if self.clip is not None:
            self.is_playing = True

    def pause(self) -> None:
        self.calls.append("pause")
        self.is_playing = False

    def stop(self) -> None:
        self.calls.append("stop")
        self.is_playing = False
        self._position = 0.0

    def set_rate(self, rate: float) -> None:
        self.calls.append(f"rate:{rate}")
        self.rate = rate

    @property
    def position(self) -> float:
        return self._position

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    def advance(self, seconds: float) -> None:
        """Move the playhead forward and emit a time update."""
        self._position += seconds
        if self._duration is not None and self._position >= self._duration:
            self._position = self._duration
        self._on_time_update(self._position, self._duration)

    def finish(self) -> None:
        """Emit the end-of-media signal."""
        self.is_playing = False
        self._position = 0.0
        self._on_ended()


@dataclass
class NullSpeechRecognizer:
    """Recognizer stand-in that emits whatever transcripts it is handed."""

    fail_on_start: bool = False
    running: bool = False
    start_count: int = 0
    stop_count: int = 0
    _on_result: TranscriptListener = field(default=_ignore_transcript, repr=False)
    _on_end: RecognitionEndListener = field(default=_ignore, repr=False)
    _on_error: RecognitionErrorListener = field(default=_ignore_error, repr=False)

    def set_listeners(
        self,
        on_result: TranscriptListener,
        on_end: RecognitionEndListener,
        on_error: RecognitionErrorListener,
    ) -> None:
        self._on_result = on_result
        self._on_end = on_end
        self._on_error = on_error

    def start(self) -> None:
        if self.fail_on_start:
            raise RecognitionError("Speech recognition is not available")
        self.start_count += 1
        self.running = True

    def stop(self) -> None:
        self.stop_count += 1
        if self.running:
            self.running = False
            self._on_end()

    def emit(self, transcript: str) -> None:
        self._on_result(transcript)

    def end(self) -> None:
        """Simulate the engine stopping on its own (e.g. after speech-end)."""
        self.running = False
        self._on_end()

    def fail(self, message: str) -> None:
        self.running = False
        self._on_error(RecognitionError(message))
        self._on_end()


__all__ = [
    "AudioOutput",
    "AudioOutputError",
    "NullAudioOutput",
    "NullSpeechRecognizer",
    "RecognitionError",
    "SpeechRecognizer",
]
