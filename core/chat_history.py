"""
AI Chat Overlay - Chat History
In-memory transcript of the current conversation, plus JSON export.
"""

import json
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.logger import log_success, log_error


@dataclass
class ChatMessage:
    """One line of the transcript."""
    role: str                   # "user", "assistant" or "system"
    content: str
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat(timespec="seconds")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["ChatMessage"]:
        """Rebuild a message, or None if the dict is not a message."""
        if not isinstance(data, dict) or "role" not in data or "content" not in data:
            return None
        return cls(
            role=str(data["role"]),
            content=str(data["content"]),
            timestamp=str(data.get("timestamp", ""))
        )


class ChatHistory:
    """Ordered list of chat messages."""

    def __init__(self, messages: Optional[List[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def add(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()

    @property
    def message_count(self) -> int:
        """Messages exchanged with the model (system notices excluded)."""
        return sum(1 for m in self._messages if m.role != "system")

    def last_assistant_message(self) -> Optional[ChatMessage]:
        for message in reversed(self._messages):
            if message.role == "assistant":
                return message
        return None

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "ChatHistory":
        """Rebuild from saved dicts, skipping malformed entries."""
        messages = [ChatMessage.from_dict(item) for item in data or []]
        return cls([m for m in messages if m is not None])


def word_count(text: str) -> int:
    """Number of whitespace-separated words."""
    return len(text.split())


def export_chat(
    history: ChatHistory,
    model: str,
    export_dir: Path,
    now: Optional[datetime] = None
) -> Optional[Path]:
    """
    Write the transcript to ai-chat-<YYYYMMDDHHMMSS>.json.

    Args:
        history: Conversation to export
        model: Backend/model label recorded in the file
        export_dir: Destination directory (created if missing)
        now: Export time (defaults to the current time)

    Returns:
        Path of the written file, or None if nothing was written
    """
    now = now or datetime.now()
    data = {
        "timestamp": now.isoformat(),
        "model": model,
        "messageCount": history.message_count,
        "conversation": history.to_list(),
    }
    path = export_dir / f"ai-chat-{now.strftime('%Y%m%d%H%M%S')}.json"

    try:
        export_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        log_error(f"Chat export failed: {e}")
        return None

    log_success(f"Chat exported to {path}")
    return path
