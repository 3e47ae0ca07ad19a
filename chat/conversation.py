from __future__ import annotations

"""Interactive conversation loop.

One iteration reads a line, replays the session history to the completion
provider, stores the user turn followed by the assistant turn, and prints the
reply. Store trouble degrades the context; provider trouble skips the reply.
Neither ends the session. Only the exit sentinel (or end of input) does.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from chat.core.memory import StoreError, Turn
from chat.provider import ProviderError


logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"
PROMPT = ">"


class HistoryStore(Protocol):
    def append(self, session_id: str, turn: Turn) -> None: ...

    def read_all(self, session_id: str) -> List[Turn]: ...


class Provider(Protocol):
    def generate(self, history: Sequence[Turn], text: str) -> str: ...


class Terminal(Protocol):
    def read(self, prompt: str) -> Optional[str]: ...

    def write(self, text: str) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class SessionContext:
    session_id: str
    store: HistoryStore
    provider: Provider


@dataclass(frozen=True)
class StepResult:
    reply: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def new_session_id(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def is_exit_command(line: str) -> bool:
    return line.strip().casefold() == EXIT_COMMAND


def _read_history(context: SessionContext) -> List[Turn]:
    try:
        return context.store.read_all(context.session_id)
    except StoreError as exc:
        logger.warning("History unavailable, continuing without context: %s", exc)
        return []


def _persist(context: SessionContext, user_turn: Turn, assistant_turn: Turn) -> None:
    for turn in (user_turn, assistant_turn):
        try:
            context.store.append(context.session_id, turn)
        except StoreError as exc:
            # Stop here so an assistant turn is never stored without its user turn.
            logger.warning("Turn not persisted: %s", exc)
            return


def handle_input(context: SessionContext, line: str) -> StepResult:
    """Run one Generating step for a non-exit line.

    The raw line is the user's text; only the exit check normalizes it.
    Nothing is written to the store when the provider fails.
    """
    history = _read_history(context)
    try:
        reply = context.provider.generate(history, line)
    except ProviderError as exc:
        logger.warning("Completion failed for session %s: %s", context.session_id, exc)
        return StepResult(error=str(exc))

    _persist(
        context,
        Turn(role="user", content=line),
        Turn(role="assistant", content=reply),
    )
    return StepResult(reply=reply)


def run_conversation(context: SessionContext, terminal: Terminal) -> None:
    """Read, answer and print until the exit sentinel or end of input.

    Each reply goes out in one ``terminal.write`` call, verbatim. Newlines the
    model put inside the reply are kept, so a multi-paragraph answer prints
    over several terminal lines.
    """
    logger.info("Starting conversation session_id=%s", context.session_id)
    try:
        while True:
            line = terminal.read(PROMPT)
            if line is None or is_exit_command(line):
                break
            result = handle_input(context, line)
            if result.ok:
                terminal.write(result.reply)
            else:
                terminal.write(f"Error: {result.error}")
    finally:
        terminal.close()
    logger.info("Conversation ended session_id=%s", context.session_id)
