"""
Bounded, persisted conversation history for the assistant.

Turns are kept in order and written to disk as a JSON array of
``{"role": ..., "content": ...}`` objects after every mutation. The oldest
turns are evicted once the capacity is exceeded.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """A single message in the conversation."""
    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationHistory:
    """
    Ordered log of conversation turns with FIFO eviction.

    Persistence is best-effort: a failed write is logged and the in-memory
    history stays authoritative, so the interactive flow is never blocked
    by a disk problem.

    Args:
        path: JSON file the history is stored in (None keeps it in memory)
        capacity: Maximum number of turns retained

    Example:
        >>> history = ConversationHistory(path, capacity=2)
        >>> history.append(Role.USER, "hi")
        >>> history.append(Role.ASSISTANT, "hello")
        >>> history.append(Role.USER, "bye")
        >>> [t.content for t in history]
        ['hello', 'bye']
    """

    def __init__(self, path: Optional[Path] = None, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.path = Path(path) if path else None
        self.capacity = capacity
        self._turns: List[ConversationTurn] = []

    def append(self, role: Role, content: str) -> None:
        """Add a turn at the tail, evict from the head, and persist."""
        self._turns.append(ConversationTurn(Role(role), content))
        while len(self._turns) > self.capacity:
            self._turns.pop(0)
        self._persist()

    def load(self) -> None:
        """
        Read the history from disk.

        Missing or corrupt storage yields an empty history. Entries that are
        not ``{role, content}`` objects with a known role are skipped, and
        only the most recent ``capacity`` turns are kept.
        """
        self._turns = []
        if self.path is None or not self.path.exists():
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable conversation history {self.path}: {e}")
            return

        if not isinstance(data, list):
            logger.warning(f"Ignoring conversation history {self.path}: expected a JSON array")
            return

        for entry in data:
            try:
                turn = ConversationTurn(Role(entry["role"]), str(entry["content"]))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping malformed history entry: {entry!r}")
                continue
            self._turns.append(turn)

        if len(self._turns) > self.capacity:
            self._turns = self._turns[-self.capacity:]
        logger.info(f"Loaded {len(self._turns)} conversation turns")

    def clear(self) -> None:
        self._turns = []
        self._persist()

    def turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    def messages(self) -> List[Dict[str, str]]:
        """Turns in the chat-completion message format."""
        return [turn.to_message() for turn in self._turns]

    def _persist(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.messages(), ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to persist conversation history to {self.path}: {e}")

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))
