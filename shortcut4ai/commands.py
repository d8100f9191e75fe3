"""
Named hotkey commands and their bindings.

Each command has a stable setting key under which a user override is
persisted; when no override exists the command's default shortcut is used.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import Settings
from .desktop.hotkeys import Action, Shortcut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A bindable action."""
    setting_key: str
    label: str
    default: Shortcut


DEFAULT_COMMANDS: List[Command] = [
    Command("grammarShortcut", "Grammar Fix", Shortcut.parse("alt+cmd+g")),
    Command("transcriptionShortcut", "Transcription", Shortcut.parse("alt+cmd+k")),
    Command("assistantShortcut", "AI Assistant", Shortcut.parse("alt+cmd+o")),
    Command("assistantClipboardShortcut", "AI Assistant (Clipboard)", Shortcut.parse("alt+cmd+i")),
    Command("editPromptShortcut", "Edit Grammar Prompt", Shortcut.parse("ctrl+alt+cmd+p")),
    Command("editAssistantPromptShortcut", "Edit Assistant Prompt", Shortcut.parse("ctrl+alt+cmd+a")),
    Command("autoGrammarToggle", "Toggle Auto-Grammar", Shortcut.parse("ctrl+alt+cmd+t")),
    Command("condensedModeToggle", "Toggle Condensed Mode", Shortcut.parse("ctrl+alt+cmd+c")),
    Command("viewHistoryShortcut", "View Conversation History", Shortcut.parse("ctrl+alt+cmd+h")),
]


def find_command(setting_key: str, commands: List[Command] = DEFAULT_COMMANDS) -> Optional[Command]:
    for command in commands:
        if command.setting_key == setting_key:
            return command
    return None


def resolve_bindings(settings: Settings, commands: List[Command] = DEFAULT_COMMANDS) -> Dict[str, Shortcut]:
    """
    Map every command's setting key to its effective shortcut.

    A stored override that no longer parses is logged and the default used.
    """
    bindings = {}
    for command in commands:
        stored = settings.get_shortcut(command.setting_key)
        shortcut = command.default
        if stored is not None:
            modifiers, key = stored
            try:
                shortcut = Shortcut.of(modifiers, key)
            except ValueError as e:
                logger.warning(f"Ignoring invalid shortcut for {command.setting_key}: {e}")
        bindings[command.setting_key] = shortcut
    return bindings


def find_conflicts(bindings: Dict[str, Shortcut]) -> List[Tuple[str, str, Shortcut]]:
    """Return ``(first_key, second_key, shortcut)`` for every duplicated shortcut."""
    seen: Dict[Shortcut, str] = {}
    conflicts = []
    for setting_key, shortcut in bindings.items():
        if shortcut in seen:
            conflicts.append((seen[shortcut], setting_key, shortcut))
        else:
            seen[shortcut] = setting_key
    return conflicts


def build_hotkey_map(
    settings: Settings,
    handlers: Dict[str, Action],
    commands: List[Command] = DEFAULT_COMMANDS,
) -> Dict[Shortcut, Tuple[str, Action]]:
    """
    Build the ``HotkeyManager.rebind`` mapping from settings and handlers.

    Commands without a handler are skipped.

    Raises:
        ValueError: If two commands resolve to the same shortcut
    """
    bindings = resolve_bindings(settings, commands)
    conflicts = find_conflicts(bindings)
    if conflicts:
        first, second, shortcut = conflicts[0]
        raise ValueError(f"Shortcut {shortcut} is assigned to both {first} and {second}")

    hotkeys = {}
    for command in commands:
        handler = handlers.get(command.setting_key)
        if handler is None:
            logger.debug(f"No handler for {command.setting_key}, not binding")
            continue
        hotkeys[bindings[command.setting_key]] = (command.label, handler)
    return hotkeys
