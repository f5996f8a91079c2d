"""
Client-side playback for Murph documents.

- documents: reading plain-text files into memory
- gateway_client: HTTP client for the synthesis gateway and the voice cache
- controller: the playback session state machine
- commands: mapping spoken phrases to playback commands
- capabilities: audio output / speech recognition interfaces and null engines
- engines: sounddevice and SpeechRecognition backed engines (optional extra)
"""

from .capabilities import (
    AudioOutput,
    AudioOutputError,
    NullAudioOutput,
    NullSpeechRecognizer,
    RecognitionError,
    SpeechRecognizer,
)
from .commands import VoiceCommand, match_voice_command
from .controller import AudioClip, PlaybackController, PlaybackSession, PlaybackState
from .documents import Document, ReadFailure, read_document
from .gateway_client import GatewayClient, GatewayError, GatewayValidationError, VoiceCatalog

__all__ = [
    "AudioClip",
    "AudioOutput",
    "AudioOutputError",
    "Document",
    "GatewayClient",
    "GatewayError",
    "GatewayValidationError",
    "NullAudioOutput",
    "NullSpeechRecognizer",
    "PlaybackController",
    "PlaybackSession",
    "PlaybackState",
    "ReadFailure",
    "RecognitionError",
    "SpeechRecognizer",
    "VoiceCatalog",
    "VoiceCommand",
    "match_voice_command",
    "read_document",
]
