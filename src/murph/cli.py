#!/usr/bin/env python3
"""Murph Reader - terminal client for the synthesis gateway.

Loads a text document, has the gateway synthesize it, and plays it back with
pause/resume, speed control and optional voice commands.
"""

import argparse
import asyncio
import os
import signal
import sys
from typing import Optional

import httpx
from pydantic import AnyHttpUrl
from rich.console import Console
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.prompt import Prompt
from rich.style import Style
from rich.table import Table

from .config import get_client_settings
from .player.capabilities import AudioOutput, NullAudioOutput, NullSpeechRecognizer, SpeechRecognizer
from .player.controller import PlaybackController, PlaybackSession, PlaybackState
from .player.documents import ReadFailure
from .player.gateway_client import GatewayClient, GatewayError, VoiceCatalog

# Styles
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")
STATE_STYLES = {
    PlaybackState.IDLE: "dim",
    PlaybackState.UPLOADING: "yellow",
    PlaybackState.PROCESSING: "yellow",
    PlaybackState.READY: "green",
    PlaybackState.PLAYING: "bright_green",
    PlaybackState.PAUSED: "cyan",
    PlaybackState.ERROR: "red",
}


def _build_engines(silent: bool) -> tuple[AudioOutput, SpeechRecognizer]:
    if silent:
        return NullAudioOutput(), NullSpeechRecognizer()
    # Imported here so --silent works without the audio extra installed
    from .player.engines import MicrophoneRecognizer, SoundDeviceAudioOutput

    return SoundDeviceAudioOutput(), MicrophoneRecognizer()


class ReaderShell:
    """Interactive shell around a PlaybackController."""

    def __init__(self, server_url: Optional[str] = None, voice: Optional[str] = None, silent: bool = False):
        settings = get_client_settings()
        if server_url:
            settings = settings.model_copy(update={"gateway_url": AnyHttpUrl(server_url)})
        self.settings = settings
        self.console = Console()
        self.running = True
        self._last_state: Optional[PlaybackState] = None
        self._playback_tasks: set[asyncio.Task] = set()

        gateway = GatewayClient(settings)
        audio_output, recognizer = _build_engines(silent)
        self.controller = PlaybackController(
            gateway,
            audio_output,
            recognizer,
            voice_catalog=VoiceCatalog(
                gateway.list_voices, ttl_seconds=settings.voice_catalog_ttl_seconds
            ),
            default_voice_id=voice or settings.default_voice_id,
            on_notify=self._notify,
            on_change=self._on_change,
        )

    def _notify(self, message: str, level: str) -> None:
        if level == "error":
            self.console.print(f"[error]{message}[/error]", style=ERROR_STYLE)
        else:
            self.console.print(f"[info]{message}[/info]", style=INFO_STYLE)

    def _on_change(self, session: PlaybackSession) -> None:
        if session.state != self._last_state:
            self._last_state = session.state
            style = STATE_STYLES.get(session.state, "white")
            self.console.print(f"[{style}]● {session.state.value}[/{style}]")

    def _play_done(self, task: asyncio.Task) -> None:
        self._playback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.console.print(f"[error]Playback failed: {exc}[/error]", style=ERROR_STYLE)

    async def _wait_for_playback(self) -> None:
        while self._playback_tasks:
            await asyncio.gather(*list(self._playback_tasks), return_exceptions=True)

    async def _check_health(self) -> bool:
        """Check if the gateway is reachable."""
        url = str(self.settings.gateway_url).rstrip("/")
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{url}/health")
                if resp.status_code == 200:
                    data = resp.json()
                    if not data.get("provider_configured"):
                        self.console.print(
                            "[error]Gateway has no ElevenLabs key configured[/error]",
                            style=ERROR_STYLE,
                        )
                    self.console.print(f"[dim]Connected to gateway at {url}[/dim]")
                    return True
        except Exception as e:
            self.console.print(
                f"[error]Cannot connect to gateway: {e}[/error]", style=ERROR_STYLE
            )
        return False

    def _show_status(self) -> None:
        session = self.controller.session
        document = self.controller.document

        table = Table.grid(padding=(0, 2))
        table.add_column(style="dim")
        table.add_column()
        style = STATE_STYLES.get(session.state, "white")
        table.add_row("State", f"[{style}]{session.state.value}[/{style}]")
        table.add_row(
            "Document",
            f"{document.name} ({document.char_count} chars)" if document else "(none)",
        )
        table.add_row("Voice", session.selected_voice_id)
        table.add_row("Speed", f"{session.playback_speed}x")
        table.add_row("Progress", ProgressBar(total=100, completed=session.progress, width=30))
        table.add_row("Listening", "yes" if session.is_listening else "no")
        if session.status_message:
            table.add_row("Status", session.status_message)

        self.console.print(Panel(table, title="Murph Reader", border_style="blue"))

    async def _list_voices(self) -> None:
        try:
            voices = await self.controller.list_voices()
        except GatewayError as e:
            self.console.print(f"[error]{e}[/error]", style=ERROR_STYLE)
            return

        selected = self.controller.session.selected_voice_id
        table = Table(title="Voices")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Category", style="dim")
        for voice in voices:
            marker = " *" if voice.id == selected else ""
            table.add_row(voice.id, f"{voice.name}{marker}", voice.category or "")
        self.console.print(table)

    def _show_help(self) -> None:
        """Show available commands."""
        help_text = """
[bold]Commands:[/bold]
  load <path>        Load a .txt or .md document
  play               Play (synthesizes on first play)
  pause              Pause playback
  stop               Stop and rewind
  voice <id>         Select a voice
  voices             List available voices
  speed <x>          Playback speed, 0.5 - 2.0
  listen             Toggle voice commands
  clear              Unload the document
  status             Show the session
  quit               Exit

[bold]Voice commands:[/bold]
  play / start, pause / stop, resume / continue,
  faster / speed up, slower / slow down
"""
        self.console.print(
            Panel(help_text.strip(), title="Murph Reader Help", border_style="blue")
        )

    async def _handle_command(self, line: str) -> None:
        parts = line.strip().split(maxsplit=1)
        if not parts:
            return
        command = parts[0].lower()
        argument = parts[1].strip() if len(parts) > 1 else ""

        if command == "help":
            self._show_help()
        elif command in ("quit", "exit"):
            self.running = False
        elif command == "load":
            if not argument:
                self.console.print("[dim]Usage: load <path>[/dim]")
                return
            try:
                await self.controller.load_document(argument)
            except ReadFailure:
                pass  # already reported through the notify listener
        elif command == "play":
            # Synthesis can take a while; keep the prompt free for clear/voice
            task = asyncio.create_task(self.controller.play())
            self._playback_tasks.add(task)
            task.add_done_callback(self._play_done)
        elif command == "pause":
            self.controller.pause()
        elif command == "stop":
            self.controller.stop()
        elif command == "voice":
            if not argument:
                self.console.print(
                    f"[info]Current voice: {self.controller.session.selected_voice_id}[/info]",
                    style=INFO_STYLE,
                )
                return
            self.controller.set_voice(argument)
        elif command == "voices":
            await self._list_voices()
        elif command == "speed":
            try:
                speed = float(argument)
            except ValueError:
                self.console.print("[dim]Usage: speed <0.5-2.0>[/dim]")
                return
            applied = self.controller.set_speed(speed)
            self.console.print(f"[info]Speed: {applied}x[/info]", style=INFO_STYLE)
        elif command == "listen":
            self.controller.toggle_voice_commands()
        elif command == "clear":
            self.controller.clear_document()
        elif command == "status":
            self._show_status()
        else:
            self.console.print(f"[dim]Unknown command '{command}'. Type help.[/dim]")

    async def run(self) -> None:
        """Main loop."""
        if not await self._check_health():
            return

        self.console.print()
        self.console.print(
            "[bold]Murph Reader[/bold] - Type help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        while self.running:
            try:
                # Prompt in a worker thread so audio and recognizer events keep flowing
                line = await asyncio.to_thread(Prompt.ask, "[bold blue]murph[/bold blue]")
                await self._handle_command(line)
            except EOFError:
                self.console.print("\n[dim]Goodbye![/dim]")
                break

        if self.controller.is_listening:
            self.controller.toggle_voice_commands()
        self.controller.clear_document()
        await self._wait_for_playback()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Murph Reader - listen to documents through the synthesis gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  murph-reader                              Connect to localhost:8000
  murph-reader --server http://pi:8000      Connect to a remote gateway
  murph-reader --silent notes.md            Load a file without audio hardware

Environment Variables:
  MURPH_GATEWAY_URL    Default gateway URL
  MURPH_VOICE_ID       Default voice
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("MURPH_GATEWAY_URL"),
        help="Gateway URL (default: http://localhost:8000)",
    )
    parser.add_argument("--voice", "-v", default=None, help="Voice ID to start with")
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Use null audio and recognition engines",
    )
    parser.add_argument("document", nargs="?", help="Document to load on startup")

    args = parser.parse_args()

    def signal_handler(sig, frame):
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    async def _run() -> None:
        shell = ReaderShell(server_url=args.server, voice=args.voice, silent=args.silent)
        if args.document:
            await shell._handle_command(f"load {args.document}")
        await shell.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
