from __future__ import annotations

"""Session history stores.

Turns for one session live under a single key, append-only, in conversation
order. The store expires the whole session ``ttl`` seconds after the last
write; an expired or unknown session reads back as an empty history.
"""

import logging
import time
from typing import Callable, Dict, List, Literal, Optional, Tuple

from langchain_core.chat_history import BaseChatMessageHistory
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, ConfigDict, Field
import redis
from redis.exceptions import RedisError

from config.settings import ConfigError, Settings


logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="'user' or 'assistant'")
    content: str


class StoreError(RuntimeError):
    """A read or write against the history store failed."""


def turn_to_message(turn: Turn) -> BaseMessage:
    if turn.role == "user":
        return HumanMessage(content=turn.content)
    return AIMessage(content=turn.content)


def message_to_turn(message: BaseMessage) -> Optional[Turn]:
    content = message.content if isinstance(message.content, str) else str(message.content)
    if message.type == "human":
        return Turn(role="user", content=content)
    if message.type == "ai":
        return Turn(role="assistant", content=content)
    # System or tool messages are never written by the chat loop.
    return None


HistoryFactory = Callable[[str], BaseChatMessageHistory]


class RedisHistoryStore:
    """History kept in Redis through LangChain's ``RedisChatMessageHistory``.

    The client pushes each message onto a per-session list and refreshes the
    key's expiry on every write, so the TTL is measured from the last write.
    """

    def __init__(
        self,
        url: str,
        ttl: Optional[int] = 300,
        key_prefix: str = "message_store:",
        history_factory: Optional[HistoryFactory] = None,
    ) -> None:
        self.url = url
        self.ttl = ttl
        self.key_prefix = key_prefix
        self._history_factory = history_factory or self._redis_history
        self._histories: Dict[str, BaseChatMessageHistory] = {}

    def _redis_history(self, session_id: str) -> BaseChatMessageHistory:
        from langchain_community.chat_message_histories import RedisChatMessageHistory

        return RedisChatMessageHistory(
            session_id=session_id,
            url=self.url,
            key_prefix=self.key_prefix,
            ttl=self.ttl,
        )

    def _history(self, session_id: str) -> BaseChatMessageHistory:
        history = self._histories.get(session_id)
        if history is None:
            history = self._history_factory(session_id)
            self._histories[session_id] = history
        return history

    def append(self, session_id: str, turn: Turn) -> None:
        try:
            self._history(session_id).add_message(turn_to_message(turn))
        except (RedisError, ValueError) as exc:
            raise StoreError(f"Could not append {turn.role} turn to session {session_id}: {exc}") from exc

    def read_all(self, session_id: str) -> List[Turn]:
        try:
            messages = self._history(session_id).messages
        except (RedisError, ValueError) as exc:
            raise StoreError(f"Could not read history for session {session_id}: {exc}") from exc
        turns = [message_to_turn(m) for m in messages]
        return [t for t in turns if t is not None]

    def ping(self) -> None:
        client = redis.Redis.from_url(self.url)
        try:
            client.ping()
        except RedisError as exc:
            raise StoreError(f"Redis at {self.url} is unreachable: {exc}") from exc
        finally:
            client.close()

    def close(self) -> None:
        for history in self._histories.values():
            client = getattr(history, "redis_client", None)
            if client is not None:
                client.close()
        self._histories.clear()


class InMemoryHistoryStore:
    """Process-local history with the same expiry rules as the Redis store."""

    def __init__(self, ttl: Optional[int] = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, Tuple[List[Turn], float]] = {}

    def _live(self, session_id: str) -> Optional[List[Turn]]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        turns, last_write = entry
        if self.ttl is not None and self._clock() - last_write >= self.ttl:
            del self._sessions[session_id]
            logger.debug("Session %s expired", session_id)
            return None
        return turns

    def append(self, session_id: str, turn: Turn) -> None:
        turns = self._live(session_id) or []
        turns.append(turn)
        self._sessions[session_id] = (turns, self._clock())

    def read_all(self, session_id: str) -> List[Turn]:
        return list(self._live(session_id) or [])

    def ping(self) -> None:
        return None

    def close(self) -> None:
        self._sessions.clear()


def build_history_store(settings: Settings):
    if settings.history_backend == "memory":
        logger.info("Using in-memory history store (ttl=%ss)", settings.session_ttl)
        return InMemoryHistoryStore(ttl=settings.session_ttl)
    if settings.history_backend == "redis":
        logger.info("Using Redis history store at %s (ttl=%ss)", settings.redis_url, settings.session_ttl)
        return RedisHistoryStore(
            url=settings.redis_url,
            ttl=settings.session_ttl,
            key_prefix=settings.redis_key_prefix,
        )
    raise ConfigError(f"Unknown HISTORY_BACKEND {settings.history_backend!r}")
