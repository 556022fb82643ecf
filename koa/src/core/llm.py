"""
Koa - Generation Service Adapter
==================================
Bridges the reply pipeline's role-tagged turns to a LangChain chat model.

The pipeline only knows the ``GenerationService`` protocol; any LangChain
chat model (Gemini in production, ``FakeListChatModel`` in tests) can be
wrapped with ``ChatModelGenerator``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from koa.config.settings import Settings
from koa.src.core.models import Message
from koa.src.utils.logger import get_logger

logger = get_logger(__name__)

_ROLE_TO_MESSAGE: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


@runtime_checkable
class GenerationService(Protocol):
    """Anything that turns role-tagged turns into one completion string."""

    async def generate(self, turns: list[Message]) -> str: ...


def to_langchain_messages(turns: list[Message]) -> list[BaseMessage]:
    """Map ``Message`` turns onto LangChain message classes, order preserved."""
    return [_ROLE_TO_MESSAGE[turn.role](content=turn.content) for turn in turns]


class ChatModelGenerator:
    """``GenerationService`` backed by a LangChain chat model."""

    __slots__ = ("_llm",)

    def __init__(self, chat_model: BaseChatModel) -> None:
        self._llm = chat_model


    async def generate(self, turns: list[Message]) -> str:
        response = await self._llm.ainvoke(to_langchain_messages(turns))
        content = response.content if hasattr(response, "content") else response
        if not isinstance(content, str):
            # Multi-part content: keep the text parts only
            content = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
        return content or "{}"


def build_chat_model(config: Settings) -> BaseChatModel:
    """
    Initialise the Gemini chat model via LangChain.

    ``response_mime_type="application/json"`` constrains the completion
    to a single JSON object.
    """
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=config.LLM_MODEL, temperature=config.LLM_TEMPERATURE, google_api_key=config.GOOGLE_API_KEY.get_secret_value(), response_mime_type="application/json")
    logger.info("LLM initialised: %s (temperature=%.1f, json output)", config.LLM_MODEL, config.LLM_TEMPERATURE)
    return llm
