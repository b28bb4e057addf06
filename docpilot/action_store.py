"""ActionStore — per-conversation action lists with TTL expiry.

Conversations are kept in LRU order and capped; a conversation untouched for
longer than the TTL is dropped on the next access.
"""

import sys
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from docpilot.domain.models import ParsedAction


def _log(msg: str):
    print(msg, file=sys.stderr)


@dataclass
class _Conversation:
    actions: List[ParsedAction] = field(default_factory=list)
    touched: float = 0.0


class ActionStore:
    _MAX_CONVERSATIONS = 50

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_conversations: int = _MAX_CONVERSATIONS,
        clock: Callable[[], float] = time.monotonic,
        on_drop: Optional[Callable[[List[ParsedAction]], None]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_conversations = max_conversations
        self._clock = clock
        self.on_drop = on_drop
        self._conversations: "OrderedDict[str, _Conversation]" = OrderedDict()
        self._owner: Dict[str, str] = {}  # action id -> conversation id

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return self._live(conversation_id) is not None

    def _expired(self, conv: _Conversation) -> bool:
        return self._clock() - conv.touched > self.ttl_seconds

    def _drop(self, conversation_id: str) -> List[ParsedAction]:
        conv = self._conversations.pop(conversation_id, None)
        if conv is None:
            return []
        for action in conv.actions:
            self._owner.pop(action.id, None)
        if self.on_drop and conv.actions:
            self.on_drop(conv.actions)
        return conv.actions

    def _live(self, conversation_id: str) -> Optional[_Conversation]:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            return None
        if self._expired(conv):
            self._drop(conversation_id)
            _log(f"[actions] expired conversation {conversation_id}")
            return None
        return conv

    def _touch(self, conversation_id: str, conv: _Conversation) -> None:
        conv.touched = self._clock()
        self._conversations.move_to_end(conversation_id)

    def add(self, conversation_id: str, actions: List[ParsedAction]) -> List[ParsedAction]:
        """Append ``actions`` to a conversation, creating it if needed."""
        conv = self._live(conversation_id)
        if conv is None:
            conv = _Conversation()
            self._conversations[conversation_id] = conv
            while len(self._conversations) > self.max_conversations:
                evicted_id, _ = next(iter(self._conversations.items()))
                self._drop(evicted_id)
                _log(f"[actions] evicted conversation {evicted_id}")
        conv.actions.extend(actions)
        for action in actions:
            self._owner[action.id] = conversation_id
        self._touch(conversation_id, conv)
        return list(conv.actions)

    def list(self, conversation_id: str) -> Optional[List[ParsedAction]]:
        """Actions of a conversation in extraction order, or None if unknown."""
        conv = self._live(conversation_id)
        if conv is None:
            return None
        self._touch(conversation_id, conv)
        return list(conv.actions)

    def get(self, action_id: str) -> Optional[ParsedAction]:
        conversation_id = self._owner.get(action_id)
        if conversation_id is None:
            return None
        conv = self._live(conversation_id)
        if conv is None:
            return None
        for action in conv.actions:
            if action.id == action_id:
                return action
        return None

    def conversation_of(self, action_id: str) -> Optional[str]:
        return self._owner.get(action_id)

    def update(self, action: ParsedAction) -> bool:
        """Replace the stored action with the same ID; refreshes the TTL."""
        conversation_id = self._owner.get(action.id)
        conv = self._live(conversation_id) if conversation_id else None
        if conv is None:
            return False
        for i, existing in enumerate(conv.actions):
            if existing.id == action.id:
                conv.actions[i] = action
                self._touch(conversation_id, conv)
                return True
        return False

    def truncate(self, conversation_id: str, keep: int) -> List[ParsedAction]:
        """Keep the first ``keep`` actions; return the removed ones."""
        conv = self._live(conversation_id)
        if conv is None:
            return []
        keep = max(keep, 0)
        removed = conv.actions[keep:]
        conv.actions = conv.actions[:keep]
        for action in removed:
            self._owner.pop(action.id, None)
        if self.on_drop and removed:
            self.on_drop(removed)
        self._touch(conversation_id, conv)
        return removed

    def discard(self, conversation_id: str) -> List[ParsedAction]:
        return self._drop(conversation_id)

    def purge_expired(self) -> int:
        expired = [cid for cid, conv in self._conversations.items() if self._expired(conv)]
        for cid in expired:
            self._drop(cid)
        return len(expired)
