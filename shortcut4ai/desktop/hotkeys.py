"""
Global hotkeys and the transient Escape binding used to cancel recordings.

pynput listeners run on their own threads; every callback is handed to the
asyncio loop with ``run_coroutine_threadsafe`` so controller state is only
ever touched from the loop thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[None]]

MODIFIER_ORDER = ("ctrl", "alt", "shift", "cmd")

MODIFIER_ALIASES = {
    "control": "ctrl",
    "ctl": "ctrl",
    "option": "alt",
    "opt": "alt",
    "command": "cmd",
    "super": "cmd",
    "win": "cmd",
    "meta": "cmd",
}

NAMED_KEYS = {
    "space", "tab", "enter", "esc", "backspace", "delete", "home", "end",
    "page_up", "page_down", "up", "down", "left", "right",
    "f1", "f2", "f3", "f4", "f5", "f6", "f7", "f8", "f9", "f10", "f11", "f12",
}


@dataclass(frozen=True)
class Shortcut:
    """A key combination: a set of modifiers plus one key."""
    modifiers: FrozenSet[str]
    key: str

    @classmethod
    def of(cls, modifiers: Iterable[str], key: str) -> "Shortcut":
        mods = set()
        for modifier in modifiers:
            name = modifier.strip().lower()
            name = MODIFIER_ALIASES.get(name, name)
            if name not in MODIFIER_ORDER:
                raise ValueError(f"Unknown modifier: {modifier}")
            mods.add(name)

        key = key.strip().lower()
        if key == "escape":
            key = "esc"
        elif key == "return":
            key = "enter"
        if len(key) != 1 and key not in NAMED_KEYS:
            raise ValueError(f"Unknown key: {key}")
        return cls(frozenset(mods), key)

    @classmethod
    def parse(cls, text: str) -> "Shortcut":
        """Parse ``"alt+cmd+g"`` style combinations."""
        parts = [p for p in text.replace(" ", "").split("+") if p]
        if not parts:
            raise ValueError("Empty shortcut")
        return cls.of(parts[:-1], parts[-1])

    def sorted_modifiers(self) -> List[str]:
        return [m for m in MODIFIER_ORDER if m in self.modifiers]

    def to_pynput(self) -> str:
        """Render in pynput's ``GlobalHotKeys`` syntax, e.g. ``<alt>+<cmd>+g``."""
        parts = [f"<{m}>" for m in self.sorted_modifiers()]
        parts.append(self.key if len(self.key) == 1 else f"<{self.key}>")
        return "+".join(parts)

    def __str__(self) -> str:
        return "+".join(self.sorted_modifiers() + [self.key])


def _dispatch(loop: asyncio.AbstractEventLoop, action: Action, label: str) -> None:
    """Run an async action on the loop from a listener thread."""
    logger.debug(f"Hotkey triggered: {label}")
    future = asyncio.run_coroutine_threadsafe(action(), loop)

    def _report(done):
        if not done.cancelled() and done.exception() is not None:
            logger.error(f"Hotkey action '{label}' failed", exc_info=done.exception())

    future.add_done_callback(_report)


class HotkeyManager:
    """
    Owns the global hotkey listener.

    Bindings are a mapping from shortcut to action; every change rebuilds the
    listener wholesale rather than patching individual hotkeys.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self._listener = None
        self._bindings: Dict[Shortcut, str] = {}

    @property
    def bindings(self) -> Dict[Shortcut, str]:
        return dict(self._bindings)

    def rebind(self, bindings: Dict[Shortcut, Tuple[str, Action]]) -> None:
        """
        Replace all hotkeys.

        Args:
            bindings: Shortcut -> (label, async action)

        Raises:
            ValueError: If the same shortcut appears twice in pynput form
        """
        from pynput import keyboard

        self.stop()

        hotkeys = {}
        for shortcut, (label, action) in bindings.items():
            combo = shortcut.to_pynput()
            if combo in hotkeys:
                raise ValueError(f"Shortcut {shortcut} is bound twice")
            hotkeys[combo] = (lambda a=action, name=label: _dispatch(self.loop, a, name))
            logger.info(f"Binding {shortcut} -> {label}")

        self._listener = keyboard.GlobalHotKeys(hotkeys)
        self._listener.start()
        self._bindings = {shortcut: label for shortcut, (label, _) in bindings.items()}

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
        self._bindings = {}


class EscapeTrigger:
    """
    Transient Escape-key binding that requests cancellation.

    Only listens while bound, so Escape behaves normally the rest of the time.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self._listener = None
        self._callback: Optional[Action] = None

    @property
    def is_bound(self) -> bool:
        return self._listener is not None

    def bind(self, callback: Action) -> None:
        from pynput import keyboard

        self.unbind()
        self._callback = callback

        def on_press(key):
            if key == keyboard.Key.esc and self._callback is not None:
                _dispatch(self.loop, self._callback, "cancel")

        self._listener = keyboard.Listener(on_press=on_press)
        self._listener.start()
        logger.debug("Escape bound to cancel recording")

    def unbind(self) -> None:
        self._callback = None
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            logger.debug("Escape unbound")
