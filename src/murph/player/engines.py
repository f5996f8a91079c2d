"""Real audio output and speech recognition engines.

``SoundDeviceAudioOutput`` decodes the MP3 clip with libsndfile and feeds it
to a PortAudio stream. ``MicrophoneRecognizer`` runs a SpeechRecognition
listen loop on a background thread. Both post their events back onto the
event loop that started them.
"""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Optional

import numpy as np
import sounddevice as sd
import soundfile as sf
import speech_recognition as sr

from .capabilities import (
    AudioOutputError,
    EndedListener,
    RecognitionEndListener,
    RecognitionError,
    RecognitionErrorListener,
    TimeUpdateListener,
    TranscriptListener,
)

if TYPE_CHECKING:
    from .controller import AudioClip

logger = logging.getLogger(__name__)

# Seconds of playback between time-update events
TIME_UPDATE_INTERVAL = 0.25


class SoundDeviceAudioOutput:
    """Plays decoded clips through the default output device.

    The playback rate is applied by stepping through the sample buffer, so
    pitch shifts with speed.
    """

    def __init__(self, device: Optional[int | str] = None, blocksize: int = 2048) -> None:
        self._device = device
        self._blocksize = blocksize
        self._lock = threading.Lock()
        self._frames: Optional[np.ndarray] = None
        self._samplerate = 0
        self._cursor = 0.0
        self._rate = 1.0
        self._last_report = 0.0
        self._reached_end = False
        self._stream: Optional[sd.OutputStream] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_time_update: Optional[TimeUpdateListener] = None
        self._on_ended: Optional[EndedListener] = None

    def set_listeners(
        self,
        on_time_update: TimeUpdateListener,
        on_ended: EndedListener,
    ) -> None:
        self._on_time_update = on_time_update
        self._on_ended = on_ended

    def load(self, clip: "AudioClip") -> None:
        self.unload()
        try:
            frames, samplerate = sf.read(
                io.BytesIO(clip.data), dtype="float32", always_2d=True
            )
        except (sf.LibsndfileError, RuntimeError, TypeError) as exc:
            raise AudioOutputError(f"Unable to decode {clip.content_type}: {exc}") from exc

        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._frames = frames
            self._samplerate = int(samplerate)
            self._cursor = 0.0
            self._last_report = 0.0
            self._reached_end = False
        logger.debug(f"Loaded clip: {len(frames)} frames at {samplerate} Hz")

    def unload(self) -> None:
        self._close_stream()
        with self._lock:
            self._frames = None
            self._cursor = 0.0

    def play(self) -> None:
        if self._frames is None:
            return
        if self._stream is not None:
            if self._stream.active:
                return
            self._close_stream()
        self._reached_end = False
        try:
            self._stream = sd.OutputStream(
                samplerate=self._samplerate,
                channels=self._frames.shape[1],
                dtype="float32",
                device=self._device,
                blocksize=self._blocksize,
                callback=self._callback,
                finished_callback=self._finished,
            )
            self._stream.start()
        except sd.PortAudioError as exc:
            self._stream = None
            raise AudioOutputError(f"Audio device unavailable: {exc}") from exc

    def pause(self) -> None:
        self._close_stream()

    def stop(self) -> None:
        self._close_stream()
        with self._lock:
            self._cursor = 0.0
            self._last_report = 0.0

    def set_rate(self, rate: float) -> None:
        with self._lock:
            self._rate = rate

    @property
    def position(self) -> float:
        if not self._samplerate:
            return 0.0
        return self._cursor / self._samplerate

    @property
    def duration(self) -> Optional[float]:
        if self._frames is None or not self._samplerate:
            return None
        return len(self._frames) / self._samplerate

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    def _callback(self, outdata: np.ndarray, frames: int, time: Any, status: sd.CallbackFlags) -> None:
        if status:
            logger.debug(f"Audio callback status: {status}")
        with self._lock:
            source = self._frames
            if source is None:
                outdata.fill(0)
                raise sd.CallbackStop
            indices = (self._cursor + np.arange(frames) * self._rate).astype(np.int64)
            valid = indices < len(source)
            count = int(valid.sum())
            outdata[:count] = source[indices[:count]]
            outdata[count:] = 0
            self._cursor += frames * self._rate
            position = self._cursor / self._samplerate
            duration = len(source) / self._samplerate
            finished = self._cursor >= len(source)

        if position - self._last_report >= TIME_UPDATE_INTERVAL or finished:
            self._last_report = position
            self._post(self._on_time_update, min(position, duration), duration)

        if finished:
            self._reached_end = True
            raise sd.CallbackStop

    def _finished(self) -> None:
        if not self._reached_end:
            return
        with self._lock:
            self._cursor = 0.0
            self._last_report = 0.0
        self._post(self._on_ended)

    def _post(self, listener: Optional[Callable[..., None]], *args: Any) -> None:
        if listener is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(listener, *args)


class MicrophoneRecognizer:
    """Continuous listener over the default microphone.

    The listen loop ends on its own after ``idle_timeout`` seconds of silence,
    which surfaces as an end event; the controller decides whether to restart.
    """

    def __init__(
        self,
        device_index: Optional[int] = None,
        idle_timeout: float = 8.0,
        phrase_time_limit: float = 4.0,
        language: str = "en-US",
    ) -> None:
        self._device_index = device_index
        self._idle_timeout = idle_timeout
        self._phrase_time_limit = phrase_time_limit
        self._language = language
        self._recognizer = sr.Recognizer()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_result: Optional[TranscriptListener] = None
        self._on_end: Optional[RecognitionEndListener] = None
        self._on_error: Optional[RecognitionErrorListener] = None

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
        if self._thread is not None and self._thread.is_alive():
            return
        try:
            microphone = sr.Microphone(device_index=self._device_index)
        except (AttributeError, OSError) as exc:
            # AttributeError is how SpeechRecognition reports a missing PyAudio
            raise RecognitionError(f"Microphone unavailable: {exc}") from exc

        self._loop = asyncio.get_running_loop()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._listen_loop,
            args=(microphone, self._stop_event),
            name="murph-recognizer",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def _listen_loop(self, microphone: sr.Microphone, stop_event: threading.Event) -> None:
        try:
            with microphone as source:
                self._recognizer.adjust_for_ambient_noise(source)
                while not stop_event.is_set():
                    try:
                        audio = self._recognizer.listen(
                            source,
                            timeout=self._idle_timeout,
                            phrase_time_limit=self._phrase_time_limit,
                        )
                        text = self._recognizer.recognize_google(audio, language=self._language)
                    except sr.WaitTimeoutError:
                        logger.debug("No speech detected, recognizer stopping")
                        break
                    except sr.UnknownValueError:
                        continue
                    if text and not stop_event.is_set():
                        self._post(self._on_result, text)
        except sr.RequestError as exc:
            self._post(self._on_error, RecognitionError(f"Recognition service failed: {exc}"))
        except OSError as exc:
            self._post(self._on_error, RecognitionError(f"Microphone failed: {exc}"))
        finally:
            self._post(self._on_end)

    def _post(self, listener: Optional[Callable[..., None]], *args: Any) -> None:
        if listener is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(listener, *args)


__all__ = ["MicrophoneRecognizer", "SoundDeviceAudioOutput"]
