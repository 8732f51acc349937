"""Communication Hub — channelled messages between workers."""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from delegation_kernel.knowledge.store import KnowledgeStore

DEFAULT_CHANNELS = ("broadcast", "urgent", "coordination", "reporting")

_MEMORY_PRIORITY = {"critical": 10, "high": 7}


class CommunicationHub:
    """
    In-memory message channels. Each sent message is also remembered by
    the sender as a "communication" agent memory.
    """

    def __init__(self, knowledge: Optional[KnowledgeStore] = None):
        self.knowledge = knowledge
        self._channels: Dict[str, List[dict]] = {name: [] for name in DEFAULT_CHANNELS}
        self._lock = threading.Lock()

    def send_message(
        self,
        from_agent: str,
        to_agent: str,
        message,
        channel: str = "coordination",
        priority: str = "normal",
    ) -> dict:
        envelope = {
            "id": f"msg-{uuid4().hex[:12]}",
            "from": from_agent,
            "to": to_agent,
            "message": message,
            "channel": channel,
            "priority": priority,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._channels.setdefault(channel, []).append(envelope)

        if self.knowledge is not None:
            self.knowledge.store_agent_memory(
                from_agent,
                "communication",
                envelope,
                _MEMORY_PRIORITY.get(priority, 5),
            )
        return envelope

    def messages(self, channel: str) -> List[dict]:
        with self._lock:
            return list(self._channels.get(channel, []))

    def channel_count(self) -> int:
        return len(self._channels)
