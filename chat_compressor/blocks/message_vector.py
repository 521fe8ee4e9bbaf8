"""
消息向量块 - 逐条消息向量化 + 线性扫描检索

与 FineGrained 滑窗方案的区别：
- 每条消息一个向量，text 为 "<作者>: <正文>"
- 向量列表随压缩状态一起保存，只追加不删除
- 检索时对所有向量逐一计算余弦相似度，不依赖外部向量库

写入：
  messages[i] → embed(text[:max_chars]) → {text, vector, index: offset + i}
  单条失败只跳过该条

检索：
  query[:max_chars] → embed → 相似度 ≥ threshold → 按相似度降序 → 前 top_k
  查询向量化失败返回空结果
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from llama_index.core.bridge.pydantic import BaseModel, ConfigDict, Field
from llama_index.core.embeddings import BaseEmbedding

from ..config import CompressorConfig
from ..state import CompressionState, Message, RetrievalResult, VectorEntry
from ..utils import cosine_similarity

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class MessageVectorBlock(BaseModel):
    """
    消息向量块

    工作流程：
    1. avectorize: 新压缩的消息 → 向量条目（由调用方追加到状态）
    2. aretrieve: 最新用户消息 → 相关的历史消息
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(default="RetrievedHistory")
    embed_model: BaseEmbedding = Field(description="Embedding 模型")

    max_chars: int = Field(
        default=2000,
        gt=0,
        description="向量化前截断的最大字符数"
    )
    delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="相邻两次向量化之间的等待，避免限流"
    )

    # 检索参数
    similarity_top_k: int = Field(default=5, ge=0)
    similarity_threshold: float = Field(default=0.3)

    @classmethod
    def from_config(
        cls, embed_model: BaseEmbedding, config: CompressorConfig
    ) -> "MessageVectorBlock":
        return cls(
            embed_model=embed_model,
            max_chars=config.max_embed_chars,
            delay_seconds=config.embed_delay_seconds,
            similarity_top_k=config.retrieve_count,
            similarity_threshold=config.similarity_threshold,
        )

    def _truncate(self, text: str) -> str:
        return text[: self.max_chars]

    async def avectorize(
        self,
        messages: Sequence[Message],
        index_offset: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[VectorEntry]:
        """
        逐条向量化消息

        Args:
            messages: 待向量化的消息（已过滤）
            index_offset: 第一条消息对应的位置
            on_progress: 进度回调，参数为 0-100 的百分比

        Returns:
            成功向量化的条目，按消息顺序
        """
        entries: List[VectorEntry] = []
        total = len(messages)

        for i, message in enumerate(messages):
            text = message.render(": ")
            try:
                vector = await self.embed_model.aget_text_embedding(
                    self._truncate(text)
                )
                entries.append(
                    VectorEntry(text=text, vector=vector, index=index_offset + i)
                )
            except Exception:
                logger.warning("向量化消息 %d 失败，跳过", index_offset + i, exc_info=True)

            # 四舍五入（0.5 进位）
            progress = int(100 * (i + 1) / total + 0.5)
            logger.debug("向量化进度: %d%% (%d/%d)", progress, i + 1, total)
            if on_progress is not None:
                try:
                    on_progress(progress)
                except Exception:
                    logger.warning("进度回调失败，继续向量化", exc_info=True)

            if self.delay_seconds and i < total - 1:
                await asyncio.sleep(self.delay_seconds)

        if len(entries) < total:
            logger.warning("向量化完成: %d/%d 条成功", len(entries), total)
        return entries

    async def acheck_embedding(self, sample_text: str = "test") -> bool:
        """
        用一段短文本测试 Embedding 是否可用（例如 API key 是否有效）

        Returns:
            返回非空向量时为 True，出错或返回空向量时为 False
        """
        try:
            vector = await self.embed_model.aget_text_embedding(sample_text)
        except Exception:
            logger.warning("Embedding 测试失败", exc_info=True)
            return False
        return bool(vector)

    async def aretrieve(
        self,
        query: str,
        state: Optional[CompressionState],
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[RetrievalResult]:
        """
        检索与 query 相关的历史消息

        Args:
            query: 查询文本（通常是最新的用户消息）
            state: 当前压缩状态
            top_k: 返回数量上限，默认 similarity_top_k
            threshold: 相似度下限，默认 similarity_threshold

        Returns:
            按相似度降序的结果；无向量或查询失败时为空
        """
        if state is None or not state.vectors:
            logger.info("跳过向量查询: 无向量数据")
            return []

        top_k = self.similarity_top_k if top_k is None else top_k
        threshold = self.similarity_threshold if threshold is None else threshold
        if top_k <= 0:
            return []

        logger.info("正在查询向量，关键词: %r", query[:50])
        try:
            query_vector = await self.embed_model.aget_query_embedding(
                self._truncate(query)
            )
        except Exception:
            logger.error("向量查询错误", exc_info=True)
            return []

        scored = [
            RetrievalResult(
                text=entry.text,
                index=entry.index,
                similarity=cosine_similarity(query_vector, entry.vector),
            )
            for entry in state.vectors
        ]
        # sorted 是稳定排序，相似度相同时保持原顺序
        results = sorted(
            (r for r in scored if r.similarity >= threshold),
            key=lambda r: r.similarity,
            reverse=True,
        )[:top_k]

        logger.info("检索到 %d 条相关记录", len(results))
        for r in results:
            logger.debug("  - 相似度 %.3f: %s", r.similarity, r.text[:50])
        return results
