"""Text-completion collaborator backed by a LangChain chat model."""

from __future__ import annotations

import logging
import os
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

logger = logging.getLogger(__name__)


class TextCompleter(Protocol):
    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> str: ...


class ChatModelCompleter:
    """Adapts any LangChain chat model to the `TextCompleter` protocol."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> str:
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        for turn in history or []:
            content = str(turn.get("content", ""))
            if turn.get("role") == "assistant":
                messages.append(AIMessage(content=content))
            else:
                messages.append(HumanMessage(content=content))
        messages.append(HumanMessage(content=prompt))

        response = self.llm.invoke(messages)
        content = getattr(response, "content", response)
        if isinstance(content, list):
            return "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content)


def create_completer() -> ChatModelCompleter | None:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    logger.info("text completion enabled model=%s", model)
    return ChatModelCompleter(ChatOpenAI(model=model, temperature=0))
