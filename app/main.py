from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from chat.conversation import SessionContext, new_session_id, run_conversation
from chat.core.memory import StoreError, build_history_store
from chat.provider import build_provider
from config.settings import ConfigError, get_settings


logger = logging.getLogger("redis_chat")


class Terminal:
    """Line-oriented stdin/stdout handle for the conversation loop."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self.closed = False

    def read(self, prompt: str) -> Optional[str]:
        self._stdout.write(prompt)
        self._stdout.flush()
        try:
            line = self._stdin.readline()
        except KeyboardInterrupt:
            self._stdout.write("\n")
            return None
        if line == "":
            # EOF
            self._stdout.write("\n")
            return None
        return line.rstrip("\r\n")

    def write(self, text: str) -> None:
        self._stdout.write(f"{text}\n")
        self._stdout.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._stdout.flush()
        if self._stdin is not sys.stdin:
            self._stdin.close()


def resolve_log_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    # Unknown names come back as "Level <name>".
    return value if isinstance(value, int) else logging.WARNING


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=resolve_log_level(level),
        format="[%(asctime)s] %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main(terminal: Optional[Terminal] = None) -> int:
    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)

    try:
        settings.validate()
        logger.info(
            "Config: provider=%s model=%s backend=%s ttl=%ss",
            settings.llm_provider,
            settings.model_name,
            settings.history_backend,
            settings.session_ttl,
        )
        store = build_history_store(settings)
        store.ping()
        provider = build_provider(settings)
    except (ConfigError, StoreError) as exc:
        logger.error("Startup failed: %s", exc)
        print(f"Startup failed: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.exception("Client construction failed: %s", exc)
        print(f"Startup failed: {exc}", file=sys.stderr)
        return 1

    context = SessionContext(
        session_id=settings.session_id or new_session_id(),
        store=store,
        provider=provider,
    )
    try:
        run_conversation(context, terminal or Terminal())
    except KeyboardInterrupt:
        return 130
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
