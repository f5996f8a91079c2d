"""Mapping recognized speech to playback commands."""

from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .controller import PlaybackState

SPEED_STEP = 0.25


class VoiceCommand(Enum):
    PLAY = auto()
    PAUSE = auto()
    RESUME = auto()
    FASTER = auto()
    SLOWER = auto()


# Checked in order; the first rule whose phrase appears wins.
# A rule with a required state is skipped unless the session is in it.
_RULES: tuple[tuple[VoiceCommand, tuple[str, ...], Optional[str]], ...] = (
    (VoiceCommand.PLAY, ("play", "start"), None),
    (VoiceCommand.PAUSE, ("pause", "stop"), "playing"),
    (VoiceCommand.RESUME, ("resume", "continue"), "paused"),
    (VoiceCommand.FASTER, ("faster", "speed up"), None),
    (VoiceCommand.SLOWER, ("slower", "slow down"), None),
)


def match_voice_command(transcript: str, state: "PlaybackState") -> Optional[VoiceCommand]:
    """Return the command a transcript triggers in ``state``, if any.

    Matching is substring containment on the lower-cased transcript, so
    "display" triggers PLAY.
    """
    text = transcript.lower()
    for command, phrases, required_state in _RULES:
        if required_state is not None and state.value != required_state:
            continue
        if any(phrase in text for phrase in phrases):
            return command
    return None


__all__ = ["SPEED_STEP", "VoiceCommand", "match_voice_command"]
