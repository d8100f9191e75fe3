"""
Clipboard access and simulated copy/paste keystrokes.

The clipboard doubles as the channel for reading the focused application's
selection (send copy, read back) and for delivering results (write, send
paste). Keystrokes go through pynput's keyboard controller.
"""

import asyncio
import logging
import platform
from typing import Optional

import pyperclip

logger = logging.getLogger(__name__)


class Clipboard:
    """
    System clipboard with selection probing and paste delivery.

    Args:
        copy_delay: Seconds to wait for the focused app to fill the clipboard
        paste_delay: Seconds to wait for the clipboard to settle before pasting
    """

    def __init__(self, copy_delay: float = 0.1, paste_delay: float = 0.5):
        self.copy_delay = copy_delay
        self.paste_delay = paste_delay
        self._keyboard = None

    def read(self) -> str:
        try:
            return pyperclip.paste() or ""
        except pyperclip.PyperclipException as e:
            logger.warning(f"Could not read clipboard: {e}")
            return ""

    def write(self, text: str) -> None:
        pyperclip.copy(text)

    async def copy_selection(self) -> str:
        """Send the copy shortcut and return the clipboard afterwards."""
        self._send_shortcut("c")
        await asyncio.sleep(self.copy_delay)
        return self.read()

    async def probe_selection(self, restore: bool = True) -> Optional[str]:
        """
        Read the focused application's selection through the clipboard.

        The clipboard is cleared before the copy keystroke, so a non-empty
        result can only come from a selection. With ``restore`` the original
        clipboard is put back so the probe is invisible to the user; without
        it the selection is left on the clipboard (and the original restored
        only when nothing was selected).

        Returns:
            The selected text, or None if nothing was selected.
        """
        original = self.read()
        self.write("")
        selected = await self.copy_selection()

        if not selected or restore:
            self.write(original)
        return selected or None

    async def deliver(self, text: str) -> None:
        """Put text on the clipboard and paste it into the focused app."""
        self.write(text)
        await asyncio.sleep(self.paste_delay)
        self._send_shortcut("v")

    def _send_shortcut(self, key: str) -> None:
        from pynput import keyboard

        if self._keyboard is None:
            self._keyboard = keyboard.Controller()
        modifier = keyboard.Key.cmd if platform.system() == "Darwin" else keyboard.Key.ctrl
        with self._keyboard.pressed(modifier):
            self._keyboard.press(key)
            self._keyboard.release(key)
