"""Clipboard and global hotkey integration."""

from .clipboard import Clipboard
from .hotkeys import EscapeTrigger, HotkeyManager, Shortcut

__all__ = ["Clipboard", "EscapeTrigger", "HotkeyManager", "Shortcut"]
