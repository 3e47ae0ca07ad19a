"""
Tests for the conversation loop.
"""

from datetime import datetime, timezone

import pytest

from chat.conversation import (
    PROMPT,
    SessionContext,
    handle_input,
    is_exit_command,
    new_session_id,
    run_conversation,
)
from chat.core.memory import InMemoryHistoryStore, Turn
from tests.fakes import BrokenStore, CountingStore, FakeProvider, FakeTerminal


class TestExitCommand:

    @pytest.mark.parametrize("line", ["exit", "EXIT", "  Exit ", "\texit\n", "eXiT"])
    def test_exit_variants(self, line):
        assert is_exit_command(line)

    @pytest.mark.parametrize("line", ["", "   ", "exit now", "quit", "ex it"])
    def test_non_exit(self, line):
        assert not is_exit_command(line)


def test_new_session_id_is_timestamp():
    now = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert new_session_id(now) == "2024-05-01T12:30:00+00:00"
    assert new_session_id()


class TestConversationLoop:

    @pytest.fixture
    def store(self):
        return InMemoryHistoryStore(ttl=300)

    @pytest.fixture
    def provider(self):
        return FakeProvider()

    @pytest.fixture
    def context(self, store, provider):
        return SessionContext(session_id="s1", store=store, provider=provider)

    def test_scenario_a_first_message(self, context, store, provider):
        terminal = FakeTerminal(["hello", "exit"])
        run_conversation(context, terminal)

        assert provider.calls == [([], "hello")]
        assert store.read_all("s1") == [
            Turn(role="user", content="hello"),
            Turn(role="assistant", content="reply to hello"),
        ]
        assert terminal.output == ["reply to hello"]
        assert terminal.prompts == [PROMPT, PROMPT]
        assert terminal.closed

    def test_scenario_b_history_replayed(self, context, provider):
        run_conversation(context, FakeTerminal(["hi", "how are you", "exit"]))

        history, text = provider.calls[1]
        assert text == "how are you"
        assert history == [
            Turn(role="user", content="hi"),
            Turn(role="assistant", content="reply to hi"),
        ]

    def test_scenario_c_provider_failure_continues(self, store):
        provider = FakeProvider(fail_on=["boom"])
        context = SessionContext(session_id="s1", store=store, provider=provider)
        terminal = FakeTerminal(["boom", "after", "exit"])

        run_conversation(context, terminal)

        assert terminal.output[0].startswith("Error: ")
        assert "connection reset" in terminal.output[0]
        assert terminal.output[1] == "reply to after"
        # The failed iteration left no trace in the history.
        assert store.read_all("s1") == [
            Turn(role="user", content="after"),
            Turn(role="assistant", content="reply to after"),
        ]
        assert provider.calls[1] == ([], "after")

    def test_scenario_d_exit_makes_no_calls(self):
        store = CountingStore()
        provider = FakeProvider()
        terminal = FakeTerminal(["EXIT", "never read"])

        run_conversation(SessionContext("s1", store, provider), terminal)

        assert store.calls == 0
        assert provider.calls == []
        assert terminal.output == []
        assert terminal.closed

    def test_empty_input_is_forwarded(self, context, store, provider):
        run_conversation(context, FakeTerminal(["", "exit"]))

        assert provider.calls == [([], "")]
        assert store.read_all("s1")[0] == Turn(role="user", content="")

    def test_raw_line_is_sent_unnormalized(self, context, provider):
        run_conversation(context, FakeTerminal(["  Hello There  ", "exit"]))
        assert provider.calls[0][1] == "  Hello There  "

    def test_multiline_reply_written_verbatim(self, store):
        provider = FakeProvider(reply="First paragraph.\n\nSecond paragraph.")
        terminal = FakeTerminal(["tell me more", "exit"])

        run_conversation(SessionContext("s1", store, provider), terminal)

        assert terminal.output == ["First paragraph.\n\nSecond paragraph."]
        assert store.read_all("s1")[1].content == "First paragraph.\n\nSecond paragraph."

    def test_end_of_input_terminates(self, context, provider):
        terminal = FakeTerminal(["hello"])
        run_conversation(context, terminal)

        assert len(provider.calls) == 1
        assert terminal.closed

    def test_turn_order_across_iterations(self, context, store):
        run_conversation(context, FakeTerminal(["one", "two", "three", "exit"]))

        turns = store.read_all("s1")
        assert [t.role for t in turns] == ["user", "assistant"] * 3
        assert [t.content for t in turns[::2]] == ["one", "two", "three"]

    def test_terminal_closed_when_loop_raises(self, store):
        class ExplodingProvider:
            def generate(self, history, text):
                raise KeyboardInterrupt

        terminal = FakeTerminal(["hello"])
        with pytest.raises(KeyboardInterrupt):
            run_conversation(SessionContext("s1", store, ExplodingProvider()), terminal)
        assert terminal.closed


class TestStoreDegradation:

    def test_read_failure_uses_empty_context(self):
        store = BrokenStore(fail_reads=True, fail_writes_for=())
        provider = FakeProvider()
        context = SessionContext("s1", store, provider)

        result = handle_input(context, "hello")

        assert result.ok
        assert result.reply == "reply to hello"
        assert provider.calls == [([], "hello")]
        assert [t.role for t in store.appended] == ["user", "assistant"]

    def test_write_failure_is_not_fatal(self):
        store = BrokenStore(fail_reads=False)
        terminal = FakeTerminal(["hello", "again", "exit"])

        run_conversation(SessionContext("s1", store, FakeProvider()), terminal)

        assert terminal.output == ["reply to hello", "reply to again"]
        assert store.appended == []

    def test_assistant_not_written_without_user(self):
        store = BrokenStore(fail_reads=False, fail_writes_for=("user",))

        handle_input(SessionContext("s1", store, FakeProvider()), "hello")

        assert store.appended == []

    def test_provider_failure_appends_nothing(self):
        store = BrokenStore(fail_reads=False, fail_writes_for=())

        result = handle_input(SessionContext("s1", store, FakeProvider(fail_on=["x"])), "x")

        assert not result.ok
        assert result.reply is None
        assert store.appended == []
