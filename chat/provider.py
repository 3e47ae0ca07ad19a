from __future__ import annotations

import logging
from typing import List, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_core.runnables import Runnable

from chat.core.memory import Turn, turn_to_message
from chat.core.prompt import SYSTEM_PROMPT
from config.settings import ConfigError, Settings


logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """The completion call failed (transport, auth, quota or bad response)."""


def build_llm(settings: Settings) -> BaseChatModel:
    settings.require_credentials()

    if settings.llm_provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            temperature=settings.temperature,
        )

    if settings.llm_provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=settings.gemini_model,
            google_api_key=settings.google_api_key,
            temperature=settings.temperature,
            top_p=settings.top_p,
        )

    raise ConfigError(f"Unknown LLM_PROVIDER {settings.llm_provider!r}")


def build_chain(llm: Runnable) -> Runnable:
    prompt = ChatPromptTemplate.from_messages(
        [
            ("system", SYSTEM_PROMPT),
            MessagesPlaceholder("chat_history", optional=True),
            ("human", "{input}"),
        ]
    )
    return prompt | llm | StrOutputParser()


def to_lc_messages(history: Sequence[Turn]) -> List[BaseMessage]:
    return [turn_to_message(turn) for turn in history or []]


class CompletionProvider:
    """Turns (history, input) into the assistant's reply text."""

    def __init__(self, llm: Runnable, model_name: str = "") -> None:
        self.model_name = model_name
        self._chain = build_chain(llm)

    def generate(self, history: Sequence[Turn], text: str) -> str:
        payload = {"input": text, "chat_history": to_lc_messages(history)}
        logger.info(
            "Invoking model=%s history_turns=%s input_len=%s",
            self.model_name,
            len(history),
            len(text),
        )
        try:
            reply = self._chain.invoke(payload)
        except Exception as exc:
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(reply, str):
            raise ProviderError(f"Model returned {type(reply).__name__}, expected text")
        return reply


def build_provider(settings: Settings) -> CompletionProvider:
    return CompletionProvider(build_llm(settings), model_name=settings.model_name)
