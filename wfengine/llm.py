"""
LangChain-backed completion capability for LLM nodes.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Mapping, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from wfengine.ir.graph_schema import ModelRef

DEFAULT_BEDROCK_MODEL_ID = "us.anthropic.claude-sonnet-4-20250514-v1:0"
BEDROCK_PROVIDERS = {"bedrock", "aws", "anthropic-bedrock"}

ChatModelFactory = Callable[[ModelRef, Mapping[str, Any]], Any]


def build_chat_bedrock_converse(
    *,
    model_id: str = DEFAULT_BEDROCK_MODEL_ID,
    region_name: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Any:
    """
    Build a ChatBedrockConverse client for the given model id.
    """

    from langchain_aws import ChatBedrockConverse

    resolved_region = region_name or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
    kwargs: Dict[str, Any] = {"model": model_id}
    if temperature is not None:
        kwargs["temperature"] = temperature
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    if resolved_region:
        kwargs["region_name"] = resolved_region
    return ChatBedrockConverse(**kwargs)


def default_chat_model_factory(region_name: Optional[str] = None) -> ChatModelFactory:
    def factory(model: ModelRef, options: Mapping[str, Any]) -> Any:
        if model.provider.lower() not in BEDROCK_PROVIDERS:
            raise ValueError(
                f"No chat model factory configured for provider '{model.provider}'"
            )
        return build_chat_bedrock_converse(
            model_id=model.model,
            region_name=region_name,
            temperature=options.get("temperature"),
            max_tokens=options.get("max_tokens"),
        )

    return factory


class LangChainCompletion:
    """Completion capability that drives any LangChain chat model via ``ainvoke``."""

    def __init__(self, factory: Optional[ChatModelFactory] = None) -> None:
        self.factory = factory or default_chat_model_factory()

    async def complete(
        self, prompt: str, model: ModelRef, options: Mapping[str, Any]
    ) -> Any:
        chat_model = self.factory(model, options)
        response = await chat_model.ainvoke(build_messages(prompt, options.get("system_prompt")))
        return _extract_content(response)


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=prompt))
    return messages


def _extract_content(response: Any) -> Any:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Content blocks: keep the text parts in order.
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return content
