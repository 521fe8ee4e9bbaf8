"""测试用的 LLM / Embedding 替身，不访问网络"""

from typing import Any, Dict, List

import pytest
from llama_index.core.bridge.pydantic import Field
from llama_index.core.embeddings import BaseEmbedding
from llama_index.core.llms import (
    CompletionResponse,
    CompletionResponseGen,
    CustomLLM,
    LLMMetadata,
)
from llama_index.core.llms.callbacks import llm_completion_callback

from chat_compressor.config import CompressorConfig
from chat_compressor.state import Message


class ScriptedLLM(CustomLLM):
    """按顺序返回预设回复；回复为异常时抛出"""

    replies: List[Any] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)

    @property
    def metadata(self) -> LLMMetadata:
        return LLMMetadata(model_name="scripted")

    @llm_completion_callback()
    def complete(
        self, prompt: str, formatted: bool = False, **kwargs: Any
    ) -> CompletionResponse:
        self.prompts.append(prompt)
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return CompletionResponse(text=reply)

    @llm_completion_callback()
    def stream_complete(
        self, prompt: str, formatted: bool = False, **kwargs: Any
    ) -> CompletionResponseGen:
        yield self.complete(prompt, formatted=formatted, **kwargs)


class TableEmbedding(BaseEmbedding):
    """查表返回向量；文本包含 fail_on 中任一片段时抛出异常"""

    table: Dict[str, List[float]] = Field(default_factory=dict)
    default_vector: List[float] = Field(default_factory=lambda: [0.0, 1.0])
    fail_on: List[str] = Field(default_factory=list)
    seen: List[str] = Field(default_factory=list)

    def _lookup(self, text: str) -> List[float]:
        self.seen.append(text)
        for marker in self.fail_on:
            if marker in text:
                raise RuntimeError(f"embedding failed: {text[:20]}")
        return list(self.table.get(text, self.default_vector))

    def _get_text_embedding(self, text: str) -> List[float]:
        return self._lookup(text)

    def _get_query_embedding(self, query: str) -> List[float]:
        return self._lookup(query)

    async def _aget_query_embedding(self, query: str) -> List[float]:
        return self._lookup(query)


def chat(*turns: str) -> List[Message]:
    """"作者|正文" → 消息列表；作者为 System 时视为系统消息"""
    messages = []
    for turn in turns:
        name, text = turn.split("|", 1)
        messages.append(
            Message(
                name=name,
                text=text,
                is_user=name == "User",
                is_system=name == "System",
            )
        )
    return messages


@pytest.fixture
def config() -> CompressorConfig:
    return CompressorConfig(
        keep_recent_messages=2,
        embed_delay_seconds=0,
        openrouter_api_key=None,
    )
