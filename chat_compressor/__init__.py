"""
Chat Compressor - 基于 LlamaIndex 的增量对话压缩方案

三部分：
1. 最近消息：最近 N 条原始对话，不压缩
2. 滚动摘要：旧消息增量生成摘要，超长时再压缩
3. 向量召回：旧消息逐条向量化，按最新用户消息检索相关原文
"""

from .compressor import ChatCompressor, InjectionResult, create_compressor
from .config import CompressorConfig
from .injection import compose_injection, format_retrieved
from .state import (
    CompressionResult,
    CompressionState,
    CompressStatus,
    Message,
    RetrievalResult,
    VectorEntry,
)
from .store import CompressionStore, conversation_key
from .utils import compress_summary_text, cosine_similarity

__all__ = [
    "ChatCompressor",
    "CompressionResult",
    "CompressionState",
    "CompressionStore",
    "CompressorConfig",
    "CompressStatus",
    "InjectionResult",
    "Message",
    "RetrievalResult",
    "VectorEntry",
    "compose_injection",
    "compress_summary_text",
    "conversation_key",
    "cosine_similarity",
    "create_compressor",
    "format_retrieved",
]
