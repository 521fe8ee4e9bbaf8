"""配置类"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .prompts.compression import DEFAULT_INJECTION_TEMPLATE, DEFAULT_SUMMARY_PROMPT


@dataclass
class CompressorConfig:
    """Compressor 配置"""

    enabled: bool = True

    # 压缩范围
    keep_recent_messages: int = 10
    hide_compressed_messages: bool = False

    # 摘要配置
    summary_max_words: int = 500
    max_total_summary_length: int = 2000  # 超过则压缩总摘要（按字符计）
    summary_prompt: str = DEFAULT_SUMMARY_PROMPT

    # 向量检索配置
    skip_vectorize: bool = True
    retrieve_count: int = 5
    similarity_threshold: float = 0.3
    max_embed_chars: int = 2000
    embed_delay_seconds: float = 0.1  # 避免 API 限流

    # 注入模板
    injection_template: str = DEFAULT_INJECTION_TEMPLATE

    # 模型配置
    llm_model: str = "google/gemini-2.5-flash"
    embed_model: str = "qwen/qwen3-embedding-8b"

    # API 配置
    openrouter_api_key: Optional[str] = field(
        default_factory=lambda: os.environ.get("OPENROUTER_API_KEY")
    )
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    def __post_init__(self):
        for name in ("keep_recent_messages", "summary_max_words", "retrieve_count"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.max_total_summary_length <= 0:
            raise ValueError("max_total_summary_length must be > 0")
        if self.max_embed_chars <= 0:
            raise ValueError("max_embed_chars must be > 0")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        if self.embed_delay_seconds < 0:
            raise ValueError("embed_delay_seconds must be >= 0")

    @property
    def has_api_key(self) -> bool:
        return bool(self.openrouter_api_key)
