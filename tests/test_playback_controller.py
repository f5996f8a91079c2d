"""Tests for the playback session state machine."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from murph.player.capabilities import AudioOutputError, NullAudioOutput, NullSpeechRecognizer
from murph.player.controller import PlaybackController, PlaybackState
from murph.player.documents import ReadFailure
from murph.player.gateway_client import AudioPayload, GatewayError
from murph.schemas.tts import Voice


class FakeBackend:
    """Synthesis backend whose responses can be held back with ``gate``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Optional[str]]] = []
        self.voice_calls = 0
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[GatewayError] = None

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> AudioPayload:
        self.calls.append((text, voice_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return AudioPayload(data=f"audio:{voice_id}".encode())

    async def list_voices(self) -> list[Voice]:
        self.voice_calls += 1
        return [Voice(id="voice1", name="Rachel"), Voice(id="voice2", name="Adam")]


class Harness:
    def __init__(self, tmp_path: Path, **output_kwargs) -> None:
        self.tmp_path = tmp_path
        self.backend = FakeBackend()
        self.output = NullAudioOutput(**output_kwargs)
        self.recognizer = NullSpeechRecognizer()
        self.notifications: list[tuple[str, str]] = []
        self.states: list[PlaybackState] = []
        self.controller = PlaybackController(
            self.backend,
            self.output,
            self.recognizer,
            default_voice_id="voice1",
            on_notify=lambda message, level: self.notifications.append((message, level)),
            on_change=self._record_state,
        )

    def _record_state(self, session) -> None:
        if not self.states or self.states[-1] != session.state:
            self.states.append(session.state)

    async def load(self, text: str = "Hello there", name: str = "doc.txt"):
        path = self.tmp_path / name
        path.write_text(text, encoding="utf-8")
        return await self.controller.load_document(path)

    async def play_held(self) -> asyncio.Task:
        """Start a play whose synthesis stays pending until the gate opens."""
        self.backend.gate = asyncio.Event()
        task = asyncio.create_task(self.controller.play())
        await settle()
        return task


async def settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


@pytest.mark.asyncio
async def test_load_document_moves_to_ready(harness: Harness):
    assert harness.controller.state == PlaybackState.IDLE

    document = await harness.load("Some text to read")

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.document is document
    assert harness.states == [PlaybackState.UPLOADING, PlaybackState.READY]
    assert ("Loaded doc.txt", "info") in harness.notifications


@pytest.mark.asyncio
async def test_load_failure_moves_to_error(harness: Harness):
    with pytest.raises(ReadFailure):
        await harness.controller.load_document(harness.tmp_path / "missing.txt")

    assert harness.controller.state == PlaybackState.ERROR
    assert harness.controller.document is None
    assert harness.notifications[-1][1] == "error"


@pytest.mark.asyncio
async def test_play_without_document_notifies(harness: Harness):
    await harness.controller.play()

    assert harness.controller.state == PlaybackState.IDLE
    assert harness.backend.calls == []
    assert harness.notifications == [("Please upload a document first", "error")]


@pytest.mark.asyncio
async def test_play_synthesizes_then_plays(harness: Harness):
    await harness.load("Read me aloud")

    await harness.controller.play()

    assert harness.controller.state == PlaybackState.PLAYING
    assert harness.backend.calls == [("Read me aloud", "voice1")]
    assert harness.states[-2:] == [PlaybackState.PROCESSING, PlaybackState.PLAYING]
    assert harness.output.calls[-3:] == ["load", "rate:1.0", "play"]
    clip = harness.controller.clip
    assert clip is not None
    assert clip.voice_id == "voice1"
    assert clip.document_id == harness.controller.document.id


@pytest.mark.asyncio
async def test_pause_and_resume_reuse_audio(harness: Harness):
    await harness.load()
    await harness.controller.play()

    harness.controller.pause()
    assert harness.controller.state == PlaybackState.PAUSED
    assert harness.output.is_playing is False

    await harness.controller.play()

    assert harness.controller.state == PlaybackState.PLAYING
    assert len(harness.backend.calls) == 1


@pytest.mark.asyncio
async def test_stop_resets_progress_and_keeps_audio(harness: Harness):
    await harness.load()
    await harness.controller.play()
    harness.output.advance(4.0)
    assert harness.controller.session.progress == pytest.approx(40.0)

    harness.controller.stop()

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.session.progress == 0.0
    assert harness.output.position == 0.0

    await harness.controller.play()
    assert len(harness.backend.calls) == 1


@pytest.mark.asyncio
async def test_pause_and_stop_are_ignored_outside_playback(harness: Harness):
    await harness.load()

    harness.controller.pause()
    harness.controller.stop()

    assert harness.controller.state == PlaybackState.READY
    assert "pause" not in harness.output.calls
    assert "stop" not in harness.output.calls


@pytest.mark.asyncio
async def test_voice_change_invalidates_audio(harness: Harness):
    await harness.load("Same text")
    await harness.controller.play()
    harness.controller.pause()

    harness.controller.set_voice("voice2")

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.clip is None
    assert harness.output.clip is None

    await harness.controller.play()

    assert harness.backend.calls == [("Same text", "voice1"), ("Same text", "voice2")]
    assert harness.controller.clip.voice_id == "voice2"


@pytest.mark.asyncio
async def test_reselecting_same_voice_keeps_audio(harness: Harness):
    await harness.load()
    await harness.controller.play()

    harness.controller.set_voice("voice1")

    assert harness.controller.state == PlaybackState.PLAYING
    assert harness.controller.clip is not None


@pytest.mark.asyncio
async def test_speed_change_keeps_audio(harness: Harness):
    await harness.load()
    await harness.controller.play()

    speed = harness.controller.set_speed(1.5)

    assert speed == 1.5
    assert harness.output.rate == 1.5
    assert harness.controller.state == PlaybackState.PLAYING
    assert harness.controller.clip is not None

    harness.controller.pause()
    await harness.controller.play()
    assert len(harness.backend.calls) == 1


@pytest.mark.asyncio
async def test_speed_is_clamped(harness: Harness):
    assert harness.controller.set_speed(3.0) == 2.0
    assert harness.controller.set_speed(0.1) == 0.5


@pytest.mark.asyncio
async def test_speed_applies_to_newly_synthesized_audio(harness: Harness):
    harness.controller.set_speed(0.75)
    await harness.load()

    await harness.controller.play()

    assert harness.output.rate == 0.75
    assert harness.controller.clip.speed_at_generation == 0.75


@pytest.mark.asyncio
async def test_five_faster_commands_cap_at_two(harness: Harness):
    for _ in range(5):
        await harness.controller.handle_voice_command("faster")

    assert harness.controller.session.playback_speed == 2.0
    assert harness.notifications[-1] == ("Speed: 2.0x", "info")


@pytest.mark.asyncio
async def test_slower_commands_floor_at_half(harness: Harness):
    for _ in range(4):
        await harness.controller.handle_voice_command("slow down")

    assert harness.controller.session.playback_speed == 0.5


@pytest.mark.asyncio
async def test_late_result_after_clear_is_dropped(harness: Harness):
    await harness.load()
    task = await harness.play_held()
    assert harness.controller.state == PlaybackState.PROCESSING

    harness.controller.clear_document()
    harness.backend.gate.set()
    await task

    assert harness.controller.state == PlaybackState.IDLE
    assert harness.controller.clip is None
    assert harness.output.clip is None
    assert "play" not in harness.output.calls


@pytest.mark.asyncio
async def test_late_result_after_reload_is_dropped(harness: Harness):
    await harness.load("first", name="first.txt")
    task = await harness.play_held()

    second = await harness.load("second", name="second.txt")
    harness.backend.gate.set()
    await task

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.document is second
    assert harness.controller.clip is None


@pytest.mark.asyncio
async def test_late_result_after_voice_change_is_dropped(harness: Harness):
    await harness.load()
    task = await harness.play_held()

    harness.controller.set_voice("voice2")
    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.has_pending_synthesis is False

    harness.backend.gate.set()
    await task

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.clip is None


@pytest.mark.asyncio
async def test_late_failure_after_clear_is_dropped(harness: Harness):
    await harness.load()
    harness.backend.error = GatewayError(502, "Failed to convert text to speech: 500")
    task = await harness.play_held()

    harness.controller.clear_document()
    harness.backend.gate.set()
    await task

    assert harness.controller.state == PlaybackState.IDLE
    assert harness.controller.session.errors == []


@pytest.mark.asyncio
async def test_play_is_ignored_while_processing(harness: Harness):
    await harness.load()
    task = await harness.play_held()

    await harness.controller.play()

    assert len(harness.backend.calls) == 1
    harness.backend.gate.set()
    await task
    assert harness.controller.state == PlaybackState.PLAYING


@pytest.mark.asyncio
async def test_synthesis_failure_moves_to_error_and_retry_recovers(harness: Harness):
    await harness.load()
    harness.backend.error = GatewayError(502, "Failed to convert text to speech: 401")

    await harness.controller.play()

    assert harness.controller.state == PlaybackState.ERROR
    assert harness.controller.clip is None
    assert harness.notifications[-1] == (
        "Failed to generate audio: Failed to convert text to speech: 401",
        "error",
    )

    harness.backend.error = None
    await harness.controller.play()

    assert harness.controller.state == PlaybackState.PLAYING
    assert len(harness.backend.calls) == 2


@pytest.mark.asyncio
async def test_undecodable_audio_moves_to_error(tmp_path: Path):
    harness = Harness(tmp_path, fail_on_load=True)
    await harness.load()

    await harness.controller.play()

    assert harness.controller.state == PlaybackState.ERROR
    assert harness.controller.clip is None


@pytest.mark.asyncio
async def test_progress_follows_position_and_clamps(harness: Harness):
    await harness.load()
    await harness.controller.play()

    harness.output.advance(2.5)
    assert harness.controller.session.progress == pytest.approx(25.0)

    harness.output.advance(100.0)
    assert harness.controller.session.progress == 100.0


@pytest.mark.asyncio
async def test_progress_holds_without_duration(tmp_path: Path):
    harness = Harness(tmp_path, duration=None)
    await harness.load()
    await harness.controller.play()

    harness.output.advance(3.0)

    assert harness.controller.session.progress == 0.0


@pytest.mark.asyncio
async def test_natural_end_returns_to_ready(harness: Harness):
    await harness.load()
    await harness.controller.play()
    harness.output.advance(5.0)

    harness.output.finish()

    assert harness.controller.state == PlaybackState.READY
    assert harness.controller.session.progress == 0.0
    assert harness.controller.clip is not None


@pytest.mark.asyncio
async def test_clear_returns_to_idle(harness: Harness):
    await harness.load()
    await harness.controller.play()

    harness.controller.clear_document()

    assert harness.controller.state == PlaybackState.IDLE
    assert harness.controller.document is None
    assert harness.controller.clip is None
    assert "unload" in harness.output.calls


@pytest.mark.asyncio
async def test_session_keeps_speed_and_voice_across_documents(harness: Harness):
    harness.controller.set_speed(1.25)
    harness.controller.set_voice("voice2")

    await harness.load("one", name="one.txt")
    await harness.load("two", name="two.txt")

    assert harness.controller.session.playback_speed == 1.25
    assert harness.controller.session.selected_voice_id == "voice2"


@pytest.mark.asyncio
async def test_voice_list_is_cached(harness: Harness):
    first = await harness.controller.list_voices()
    second = await harness.controller.list_voices()

    assert [voice.id for voice in first] == ["voice1", "voice2"]
    assert first == second
    assert harness.backend.voice_calls == 1


@pytest.mark.asyncio
async def test_recognizer_restarts_until_toggled_off(harness: Harness):
    assert harness.controller.toggle_voice_commands() is True
    assert harness.recognizer.start_count == 1

    harness.recognizer.end()
    assert harness.recognizer.start_count == 2
    assert harness.controller.is_listening is True

    assert harness.controller.toggle_voice_commands() is False
    assert harness.recognizer.stop_count == 1
    assert harness.recognizer.start_count == 2
    assert harness.controller.is_listening is False


@pytest.mark.asyncio
async def test_recognizer_start_failure_disables_listening(harness: Harness):
    harness.recognizer.fail_on_start = True

    assert harness.controller.toggle_voice_commands() is False

    assert harness.controller.is_listening is False
    assert harness.notifications[-1][1] == "error"


@pytest.mark.asyncio
async def test_recognizer_error_disables_listening(harness: Harness):
    harness.controller.toggle_voice_commands()

    harness.recognizer.fail("microphone unplugged")

    assert harness.controller.is_listening is False
    assert harness.controller.session.is_listening is False
    assert harness.recognizer.start_count == 1


@pytest.mark.asyncio
async def test_transcripts_drive_playback(harness: Harness):
    await harness.load()
    harness.controller.toggle_voice_commands()

    harness.recognizer.emit("Play")
    await harness.controller.wait_for_commands()
    assert harness.controller.state == PlaybackState.PLAYING

    harness.recognizer.emit("please pause")
    await harness.controller.wait_for_commands()
    assert harness.controller.state == PlaybackState.PAUSED

    harness.recognizer.emit("continue")
    await harness.controller.wait_for_commands()
    assert harness.controller.state == PlaybackState.PLAYING
    assert len(harness.backend.calls) == 1


class UnplayableAudioOutput(NullAudioOutput):
    """Output that decodes clips but cannot open the audio device."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_play = True

    def play(self) -> None:
        if self.fail_play:
            raise AudioOutputError("Audio device unavailable")
        super().play()


@pytest.mark.asyncio
async def test_device_failure_after_synthesis_moves_to_error(harness: Harness):
    output = UnplayableAudioOutput()
    harness.output = output
    harness.controller = PlaybackController(
        harness.backend,
        output,
        harness.recognizer,
        default_voice_id="voice1",
        on_notify=lambda message, level: harness.notifications.append((message, level)),
    )
    await harness.load()

    await harness.controller.play()

    assert harness.controller.state == PlaybackState.ERROR
    assert harness.controller.has_pending_synthesis is False
    assert harness.notifications[-1] == (
        "Failed to play audio: Audio device unavailable",
        "error",
    )

    # Retrying reuses the synthesized clip once the device is back
    output.fail_play = False
    await harness.controller.play()

    assert harness.controller.state == PlaybackState.PLAYING
    assert len(harness.backend.calls) == 1


@pytest.mark.asyncio
async def test_device_failure_on_resume_moves_to_error(harness: Harness):
    output = UnplayableAudioOutput()
    output.fail_play = False
    harness.controller = PlaybackController(
        harness.backend,
        output,
        harness.recognizer,
        default_voice_id="voice1",
    )
    await harness.load()
    await harness.controller.play()
    harness.controller.pause()

    output.fail_play = True
    await harness.controller.play()

    assert harness.controller.state == PlaybackState.ERROR
    assert len(harness.backend.calls) == 1
