"""
Conversation Memory Module

Short sliding-window memory of recent turns, one window per
(session, persona) pair. Used as prompt context; nothing is persisted and
the contents live as long as the owning process.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from persona_voice.logger import get_logger

logger = get_logger(__name__)

USER = "user"
ASSISTANT = "assistant"

_ROLE_LABELS = {USER: "User", ASSISTANT: "Assistant"}


@dataclass
class MemoryEntry:
    """Single remembered message."""
    role: str  # user, assistant
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, object]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    def format(self) -> str:
        """Human-readable ``Role: content`` line."""
        return f"{_ROLE_LABELS.get(self.role, self.role.title())}: {self.content}"


class ConversationMemory:
    """
    Bounded per-(session, persona) message log.

    Each key keeps at most ``max_entries`` entries; adding beyond the cap
    evicts the oldest entry.

    Usage:
        memory = ConversationMemory(max_entries=5)
        memory.add("room-1", "rafa", "user", "Hello")
        memory.get("room-1", "rafa")
    """

    def __init__(self, max_entries: int = 5):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._logs: Dict[str, Deque[MemoryEntry]] = {}

    @staticmethod
    def key(session_id: str, persona: str) -> str:
        """Memory key for a session and persona."""
        return f"{session_id}:{persona}"

    def add(self, session_id: str, persona: str, role: str, content: str) -> MemoryEntry:
        """Append a message, evicting the oldest entry when the window is full."""
        if role not in (USER, ASSISTANT):
            raise ValueError(f"Unknown memory role '{role}'")

        key = self.key(session_id, persona)
        log = self._logs.get(key)
        if log is None:
            log = deque(maxlen=self._max_entries)
            self._logs[key] = log

        entry = MemoryEntry(role=role, content=content)
        log.append(entry)
        return entry

    def get(self, session_id: str, persona: str) -> List[MemoryEntry]:
        """Entries for a key, oldest first."""
        return list(self._logs.get(self.key(session_id, persona), ()))

    def latest(self, session_id: str, persona: str) -> Optional[MemoryEntry]:
        """Most recent entry for a key, if any."""
        log = self._logs.get(self.key(session_id, persona))
        return log[-1] if log else None

    def format_history(self, session_id: str, persona: str) -> str:
        """History as ``Role: content`` lines, most recent last."""
        return "\n".join(entry.format() for entry in self.get(session_id, persona))

    def clear(self, session_id: str, persona: Optional[str] = None) -> int:
        """
        Forget a session's history.

        Args:
            session_id: Session whose memory should be dropped
            persona: Only clear this persona's window when given

        Returns:
            Number of windows removed
        """
        if persona is not None:
            keys = [self.key(session_id, persona)]
        else:
            prefix = f"{session_id}:"
            keys = [k for k in self._logs if k.startswith(prefix)]

        removed = 0
        for key in keys:
            if self._logs.pop(key, None) is not None:
                removed += 1
                logger.debug(f"Cleared conversation memory for {key}")
        return removed

    def __len__(self) -> int:
        return len(self._logs)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def keys(self) -> List[str]:
        return list(self._logs)
