"""
Status display for interaction state changes.

The controller reports every phase change, message flash and audible cue
to a ``StatusSink``. ``ConsoleStatusSink`` renders them with Rich and plays
the system sounds on macOS.
"""

import logging
import platform
import shutil
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class Cue(str, Enum):
    START = "start"
    SUCCESS = "success"
    FAILURE = "failure"


STATUS_EMOJIS = {
    InteractionState.RECORDING: "🔴",
    InteractionState.PROCESSING: "⏳",
    InteractionState.DONE: "✅",
    InteractionState.ERROR: "❌",
}

STATUS_LABELS = {
    InteractionState.IDLE: "Idle",
    InteractionState.RECORDING: "Recording... (Esc to cancel)",
    InteractionState.PROCESSING: "Processing...",
    InteractionState.DONE: "Done",
    InteractionState.ERROR: "Error",
}

MACOS_SOUNDS = {
    Cue.START: "Blow",
    Cue.SUCCESS: "Blow",
    Cue.FAILURE: "Basso",
}


class StatusSink(ABC):
    """Receives user-visible status from the interaction controller."""

    @abstractmethod
    def show(self, state: InteractionState) -> None:
        """Display a new interaction state."""
        pass

    @abstractmethod
    def flash(self, message: str, error: bool = False) -> None:
        """Briefly show a message to the user."""
        pass

    @abstractmethod
    def cue(self, cue: Cue) -> None:
        """Play an audible cue."""
        pass


class ConsoleStatusSink(StatusSink):
    """
    Rich-based status display for the hotkey daemon.

    Args:
        console: Rich console to print to
        sounds: Play system sounds for cues (macOS ``afplay``; terminal bell elsewhere)
    """

    def __init__(self, console: Optional[Console] = None, sounds: bool = True):
        self.console = console or Console()
        self.sounds = sounds
        self._afplay = shutil.which("afplay") if platform.system() == "Darwin" else None
        self.state = InteractionState.IDLE

    def show(self, state: InteractionState) -> None:
        self.state = state
        emoji = STATUS_EMOJIS.get(state, "•")
        style = "red" if state in (InteractionState.RECORDING, InteractionState.ERROR) else "cyan"
        if state == InteractionState.DONE:
            style = "green"
        if state == InteractionState.IDLE:
            self.console.print("[dim]• Idle[/dim]")
        else:
            self.console.print(f"{emoji} {STATUS_LABELS[state]}", style=style)

    def flash(self, message: str, error: bool = False) -> None:
        if error:
            panel = Panel(
                Text(f"❌ {message}", style="red"),
                title="Error",
                title_align="center",
                border_style="red",
                padding=(0, 2)
            )
            self.console.print(panel)
        else:
            self.console.print(f"💬 {message}", style="magenta")

    def cue(self, cue: Cue) -> None:
        if not self.sounds:
            return
        if self._afplay:
            sound = Path("/System/Library/Sounds") / f"{MACOS_SOUNDS[cue]}.aiff"
            try:
                subprocess.Popen([self._afplay, str(sound)],
                                 stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            except OSError as e:
                logger.debug(f"Could not play sound {sound}: {e}")
                self._afplay = None
        elif cue == Cue.FAILURE:
            self.console.bell()
