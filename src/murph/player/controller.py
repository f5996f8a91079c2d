"""Playback session controller.

Owns the loaded document, the synthesis request lifecycle, the audio output
and voice-command dispatch for a single reader. All methods run on one event
loop; async completions are correlated with the session through a generation
tag so that a late result never lands on a document or voice the user has
since moved away from.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from ..config import DEFAULT_VOICE_ID
from ..schemas.tts import Voice
from .capabilities import (
    AudioOutput,
    AudioOutputError,
    NullAudioOutput,
    NullSpeechRecognizer,
    RecognitionError,
    SpeechRecognizer,
)
from .commands import SPEED_STEP, VoiceCommand, match_voice_command
from .documents import Document, ReadFailure, read_document
from .gateway_client import AudioPayload, GatewayError, VoiceCatalog

logger = logging.getLogger(__name__)

MIN_SPEED = 0.5
MAX_SPEED = 2.0


class PlaybackState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class SynthesisBackend(Protocol):
    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> AudioPayload:
        ...

    async def list_voices(self) -> list[Voice]:
        ...


@dataclass(frozen=True)
class SynthesisRequest:
    generation: int
    document: Document
    voice_id: str
    speed: float


@dataclass(frozen=True)
class AudioClip:
    """Decoded audio tied to the request that produced it."""

    data: bytes
    content_type: str
    document_id: str
    voice_id: str
    speed_at_generation: float
    generation: int


@dataclass
class PlaybackSession:
    generation: int
    state: PlaybackState = PlaybackState.IDLE
    progress: float = 0.0
    playback_speed: float = 1.0
    selected_voice_id: str = DEFAULT_VOICE_ID
    status_message: str = ""
    is_listening: bool = False
    errors: list[str] = field(default_factory=list)


def clamp_speed(speed: float) -> float:
    return max(MIN_SPEED, min(MAX_SPEED, speed))


NotifyListener = Callable[[str, str], None]
ChangeListener = Callable[[PlaybackSession], None]


class PlaybackController:
    """State machine over idle, uploading, processing, ready, playing, paused, error."""

    def __init__(
        self,
        backend: SynthesisBackend,
        audio_output: Optional[AudioOutput] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        *,
        voice_catalog: Optional[VoiceCatalog] = None,
        default_voice_id: str = DEFAULT_VOICE_ID,
        on_notify: Optional[NotifyListener] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self._backend = backend
        self._output: AudioOutput = audio_output or NullAudioOutput()
        self._recognizer: SpeechRecognizer = recognizer or NullSpeechRecognizer()
        self._voices = voice_catalog or VoiceCatalog(backend.list_voices)
        self._on_notify = on_notify
        self._on_change = on_change

        self._generation = 0
        self._document: Optional[Document] = None
        self._clip: Optional[AudioClip] = None
        self._pending: Optional[SynthesisRequest] = None
        self._listening = False
        self._command_tasks: set[asyncio.Task] = set()

        self.session = PlaybackSession(
            generation=self._generation,
            selected_voice_id=default_voice_id,
        )

        self._output.set_listeners(self._on_time_update, self._on_ended)
        self._recognizer.set_listeners(
            self._on_transcript,
            self._on_recognition_end,
            self._on_recognition_error,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self.session.state

    @property
    def document(self) -> Optional[Document]:
        return self._document

    @property
    def clip(self) -> Optional[AudioClip]:
        return self._clip

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def has_pending_synthesis(self) -> bool:
        return self._pending is not None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def load_document(self, path: str | Path) -> Document:
        """Read a file and start a fresh session for it.

        Raises:
            ReadFailure: If the file cannot be read or decoded as text
        """
        self._new_session(PlaybackState.UPLOADING, "Reading document...")
        generation = self._generation

        try:
            document = await read_document(path)
        except ReadFailure as exc:
            if generation == self._generation:
                self._fail(str(exc))
            raise

        if generation != self._generation:
            logger.debug(f"Discarding read of {document.name}; session moved on")
            return document

        self._document = document
        self._transition(PlaybackState.READY, f"Loaded {document.name}")
        self._notify(f"Loaded {document.name}", "info")
        return document

    def clear_document(self) -> None:
        """Drop the document and any audio. In-flight synthesis is ignored on arrival."""
        self._new_session(PlaybackState.IDLE, "")
        logger.debug(f"Cleared document (generation {self._generation})")

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def play(self) -> None:
        document = self._document
        if document is None:
            self._notify("Please upload a document first", "error")
            return

        state = self.session.state
        if state in (PlaybackState.PROCESSING, PlaybackState.UPLOADING):
            logger.debug(f"Ignoring play request while {state.value}")
            return
        if state == PlaybackState.PLAYING:
            return

        if self._has_valid_clip():
            self._start_output()
            return

        await self._synthesize_and_play(document)

    def pause(self) -> None:
        if self.session.state != PlaybackState.PLAYING:
            return
        self._output.pause()
        self._transition(PlaybackState.PAUSED, "Paused")

    def stop(self) -> None:
        if self.session.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return
        self._output.stop()
        self.session.progress = 0.0
        self._transition(PlaybackState.READY, "Stopped")

    def set_voice(self, voice_id: str) -> None:
        """Select a voice. Cached audio is discarded; the next play resynthesizes."""
        if not voice_id or voice_id == self.session.selected_voice_id:
            return

        self.session.selected_voice_id = voice_id
        had_audio = self._clip is not None or self._pending is not None
        self._discard_audio()

        if self.session.state in (
            PlaybackState.PLAYING,
            PlaybackState.PAUSED,
            PlaybackState.PROCESSING,
        ):
            self._transition(PlaybackState.READY, "Voice changed")
        else:
            self._changed()

        if had_audio:
            logger.debug(f"Voice changed to {voice_id}; cached audio invalidated")

    def set_speed(self, speed: float) -> float:
        """Set the playback rate. Cached audio stays valid."""
        speed = clamp_speed(speed)
        self.session.playback_speed = speed
        if self._clip is not None:
            self._output.set_rate(speed)
        self._changed()
        return speed

    async def list_voices(self) -> list[Voice]:
        return await self._voices.get()

    # ------------------------------------------------------------------
    # Voice commands
    # ------------------------------------------------------------------

    def toggle_voice_commands(self) -> bool:
        """Start or stop the speech listener. Returns the new listening flag."""
        if self._listening:
            self._listening = False
            self.session.is_listening = False
            self._recognizer.stop()
            self._notify("Voice commands off", "info")
            self._changed()
            return False

        try:
            self._recognizer.start()
        except RecognitionError as exc:
            self._disable_listening(str(exc))
            return False

        self._listening = True
        self.session.is_listening = True
        self._notify("Listening for voice commands...", "info")
        self._changed()
        return True

    async def handle_voice_command(self, transcript: str) -> Optional[VoiceCommand]:
        command = match_voice_command(transcript, self.session.state)
        logger.debug(f"Voice transcript {transcript!r} -> {command}")

        if command in (VoiceCommand.PLAY, VoiceCommand.RESUME):
            await self.play()
        elif command == VoiceCommand.PAUSE:
            self.pause()
        elif command == VoiceCommand.FASTER:
            speed = self.set_speed(self.session.playback_speed + SPEED_STEP)
            self._notify(f"Speed: {speed}x", "info")
        elif command == VoiceCommand.SLOWER:
            speed = self.set_speed(self.session.playback_speed - SPEED_STEP)
            self._notify(f"Speed: {speed}x", "info")
        return command

    async def wait_for_commands(self) -> None:
        """Wait until every dispatched voice command has finished."""
        while self._command_tasks:
            await asyncio.gather(*list(self._command_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _has_valid_clip(self) -> bool:
        clip = self._clip
        return (
            clip is not None
            and self._document is not None
            and clip.generation == self._generation
            and clip.document_id == self._document.id
            and clip.voice_id == self.session.selected_voice_id
        )

    def _is_current(self, request: SynthesisRequest) -> bool:
        return (
            self._pending is request
            and request.generation == self._generation
            and self._document is request.document
            and request.voice_id == self.session.selected_voice_id
        )

    async def _synthesize_and_play(self, document: Document) -> None:
        request = SynthesisRequest(
            generation=self._generation,
            document=document,
            voice_id=self.session.selected_voice_id,
            speed=self.session.playback_speed,
        )
        self._pending = request
        self._transition(PlaybackState.PROCESSING, "Generating audio...")

        try:
            payload = await self._backend.synthesize(document.content, request.voice_id)
        except GatewayError as exc:
            if not self._is_current(request):
                logger.debug(f"Dropping stale synthesis failure: {exc}")
                return
            self._pending = None
            self._fail(f"Failed to generate audio: {exc}")
            return

        if not self._is_current(request):
            logger.debug(
                f"Dropping stale synthesis result (generation {request.generation}, "
                f"current {self._generation})"
            )
            return
        self._pending = None

        clip = AudioClip(
            data=payload.data,
            content_type=payload.content_type,
            document_id=document.id,
            voice_id=request.voice_id,
            speed_at_generation=request.speed,
            generation=request.generation,
        )
        try:
            self._output.load(clip)
        except AudioOutputError as exc:
            self._fail(f"Failed to play audio: {exc}")
            return

        self._clip = clip
        self.session.progress = 0.0
        self._start_output()

    def _start_output(self) -> None:
        try:
            self._output.set_rate(self.session.playback_speed)
            self._output.play()
        except AudioOutputError as exc:
            self._fail(f"Failed to play audio: {exc}")
            return
        self._transition(PlaybackState.PLAYING, "Playing")

    def _discard_audio(self) -> None:
        self._pending = None
        if self._clip is not None:
            self._output.unload()
            self._clip = None
        self.session.progress = 0.0

    def _new_session(self, state: PlaybackState, message: str) -> None:
        self._generation += 1
        self._discard_audio()
        self._document = None
        previous = self.session
        self.session = PlaybackSession(
            generation=self._generation,
            state=state,
            playback_speed=previous.playback_speed,
            selected_voice_id=previous.selected_voice_id,
            status_message=message,
            is_listening=previous.is_listening,
        )
        self._changed()

    def _transition(self, state: PlaybackState, message: str) -> None:
        previous = self.session.state
        self.session.state = state
        self.session.status_message = message
        if previous != state:
            logger.debug(f"Playback state {previous.value} -> {state.value}")
        self._changed()

    def _fail(self, message: str) -> None:
        logger.warning(message)
        self.session.errors.append(message)
        self._transition(PlaybackState.ERROR, message)
        self._notify(message, "error")

    def _disable_listening(self, message: str) -> None:
        logger.warning(f"Voice commands unavailable: {message}")
        self._listening = False
        self.session.is_listening = False
        self._notify(f"Voice commands unavailable: {message}", "error")
        self._changed()

    def _notify(self, message: str, level: str) -> None:
        if self._on_notify is not None:
            self._on_notify(message, level)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.session)

    # Audio output listeners

    def _on_time_update(self, position: float, duration: Optional[float]) -> None:
        if self._clip is None or not duration or duration <= 0:
            return
        progress = position / duration * 100
        self.session.progress = max(0.0, min(100.0, progress))
        self._changed()

    def _on_ended(self) -> None:
        if self.session.state != PlaybackState.PLAYING:
            return
        self.session.progress = 0.0
        self._transition(PlaybackState.READY, "Finished")

    # Recognizer listeners

    def _on_transcript(self, transcript: str) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_voice_command(transcript))
        self._command_tasks.add(task)
        task.add_done_callback(self._command_done)

    def _command_done(self, task: asyncio.Task) -> None:
        self._command_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Voice command failed: {exc}", exc_info=exc)

    def _on_recognition_end(self) -> None:
        if not self._listening:
            return
        logger.debug("Speech recognizer stopped on its own; restarting")
        try:
            self._recognizer.start()
        except RecognitionError as exc:
            self._disable_listening(str(exc))

    def _on_recognition_error(self, error: RecognitionError) -> None:
        if not self._listening:
            return
        self._disable_listening(str(error))


__all__ = [
    "AudioClip",
    "MAX_SPEED",
    "MIN_SPEED",
    "PlaybackController",
    "PlaybackSession",
    "PlaybackState",
    "SynthesisBackend",
    "SynthesisRequest",
    "clamp_speed",
]
