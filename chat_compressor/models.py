"""模型封装：OpenRouter LLM 和 Embedding"""

import os
from typing import Optional

from llama_index.core.base.llms.types import ChatMessage, MessageRole
from llama_index.core.llms import LLM
from llama_index.embeddings.openai_like import OpenAILikeEmbedding
from llama_index.llms.openrouter import OpenRouter

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class EmptyResponseError(RuntimeError):
    """LLM 返回空结果"""


def create_llm(
    model: str = "google/gemini-2.5-flash",
    api_key: Optional[str] = None,
    api_base: str = OPENROUTER_BASE_URL,
    temperature: float = 0.3,
    max_tokens: int = 2048,
) -> OpenRouter:
    """
    创建用于摘要和再压缩的 OpenRouter LLM

    Args:
        model: 模型名称
        api_key: API key，默认从环境变量读取
        api_base: OpenRouter 接口地址
        temperature: 温度，摘要任务取较低值
        max_tokens: 最大输出 token 数
    """
    api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY not set")

    return OpenRouter(
        model=model,
        api_key=api_key,
        api_base=api_base,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def create_embedding(
    model: str = "qwen/qwen3-embedding-8b",
    api_key: Optional[str] = None,
    api_base: str = OPENROUTER_BASE_URL,
    dimensions: Optional[int] = None,
) -> OpenAILikeEmbedding:
    """
    创建 OpenRouter Embedding

    Args:
        model: 模型名称
        api_key: API key，默认从环境变量读取
        api_base: OpenAI 兼容接口地址
        dimensions: 嵌入维度（可选）
    """
    api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY not set")

    return OpenAILikeEmbedding(
        model_name=model,
        api_key=api_key,
        api_base=api_base,
        dimensions=dimensions,
        embed_batch_size=10,
        timeout=60.0,
    )


async def generate_text(llm: LLM, prompt: str, system_prompt: str) -> str:
    """
    文本生成：system 指令 + user 内容 → 回复文本

    Raises:
        EmptyResponseError: LLM 返回空内容
    """
    response = await llm.achat(
        [
            ChatMessage(role=MessageRole.SYSTEM, content=system_prompt),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]
    )
    text = response.message.content or ""
    if not text.strip():
        raise EmptyResponseError("LLM returned an empty response")
    return text

