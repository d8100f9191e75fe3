"""User-facing status output."""

from .status import ConsoleStatusSink, Cue, InteractionState, StatusSink

__all__ = ["ConsoleStatusSink", "Cue", "InteractionState", "StatusSink"]
