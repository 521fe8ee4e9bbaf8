"""ChatCompressor：压缩、注入、隐藏的对外入口"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from llama_index.core.bridge.pydantic import BaseModel, Field
from llama_index.core.embeddings import BaseEmbedding
from llama_index.core.llms import LLM

from .blocks.message_vector import MessageVectorBlock, ProgressCallback
from .blocks.rolling_summary import RollingSummaryBlock
from .config import CompressorConfig
from .injection import compose_injection
from .models import create_embedding, create_llm
from .state import (
    CompressionResult,
    CompressionState,
    CompressStatus,
    Message,
    RetrievalResult,
    VectorEntry,
)
from .store import CompressionStore

logger = logging.getLogger(__name__)


class InjectionResult(BaseModel):
    """下一轮生成前准备好的注入内容"""

    text: str = ""
    query: Optional[str] = None
    retrieved: List[RetrievalResult] = Field(default_factory=list)


def latest_user_message(messages: Sequence[Message]) -> Optional[Message]:
    for message in reversed(messages):
        if message.is_user and message.text:
            return message
    return None


class ChatCompressor:
    """
    对话压缩器

    每个对话一份 CompressionState：
    - acompress: 摘要 → 向量化 → 一次性提交
    - aprepare_injection: 检索 → 组装注入文本（不修改状态）
    - hide_compressed: 返回去掉已压缩消息后的新列表

    同一对话的压缩需由调用方串行执行。
    """

    def __init__(
        self,
        llm: LLM,
        config: Optional[CompressorConfig] = None,
        embed_model: Optional[BaseEmbedding] = None,
        store: Optional[CompressionStore] = None,
    ):
        self.config = config or CompressorConfig()
        self.store = store or CompressionStore()
        self.summary_block = RollingSummaryBlock.from_config(llm, self.config)
        self.vector_block = (
            MessageVectorBlock.from_config(embed_model, self.config)
            if embed_model is not None
            else None
        )

    def get_state(self, conversation_id: str) -> Optional[CompressionState]:
        return self.store.get(conversation_id)

    def edit_summary(self, conversation_id: str, summary: str) -> CompressionState:
        return self.store.edit_summary(conversation_id, summary)

    def clear(self, conversation_id: str) -> None:
        self.store.clear(conversation_id)

    async def acheck_embedding(self) -> bool:
        """Embedding 是否可用；未配置时为 False（仅摘要模式）"""
        if self.vector_block is None:
            return False
        return await self.vector_block.acheck_embedding()

    async def acompress(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        on_progress: Optional[ProgressCallback] = None,
    ) -> CompressionResult:
        """
        增量压缩对话，保留最近 keep_recent_messages 条不动

        Returns:
            COMPLETED 时新状态已提交；NOTHING_TO_DO / FAILED 时状态不变
        """
        state = self.store.get(conversation_id)
        keep_recent = self.config.keep_recent_messages

        if not messages:
            return CompressionResult(
                status=CompressStatus.NOTHING_TO_DO,
                state=state,
                reason="没有可压缩的聊天记录",
            )
        if len(messages) <= keep_recent:
            return CompressionResult(
                status=CompressStatus.NOTHING_TO_DO,
                state=state,
                reason=f"聊天只有 {len(messages)} 条消息，需要超过 {keep_recent} 条才能压缩",
            )

        start_index = state.compressed_until_index if state else 0
        end_index = len(messages) - keep_recent

        result = await self.summary_block.acompress(state, messages, end_index)
        if not result.completed:
            logger.info("压缩未提交: %s", result.reason)
            return result

        notices = list(result.notices)
        new_vectors: List[VectorEntry] = []
        if not self.config.skip_vectorize:
            if self.vector_block is None:
                notices.append("未设置 Embedding，跳过向量化")
            else:
                new_messages = RollingSummaryBlock.filter_messages(
                    messages[start_index:end_index]
                )
                logger.info("正在向量化 %d 条新消息", len(new_messages))
                try:
                    new_vectors = await self.vector_block.avectorize(
                        new_messages, start_index, on_progress
                    )
                except Exception as e:
                    logger.warning("向量化失败", exc_info=True)
                    notices.append(f"向量化失败: {e}")
                else:
                    skipped = len(new_messages) - len(new_vectors)
                    if skipped:
                        notices.append(f"{skipped} 条消息向量化失败，已跳过")

        committed = result.state.model_copy(
            update={"vectors": [*result.state.vectors, *new_vectors]}
        )
        self.store.save(conversation_id, committed)

        logger.info(
            "%s完成: 新增 %d 条，共 %d 条，新增向量 %d 条",
            "增量压缩" if start_index > 0 else "压缩",
            result.new_message_count,
            committed.compressed_message_count,
            len(new_vectors),
        )
        return result.model_copy(
            update={
                "state": committed,
                "new_vector_count": len(new_vectors),
                "notices": notices,
            }
        )

    async def aprepare_injection(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> InjectionResult:
        """根据最新用户消息检索历史并组装注入文本"""
        if not self.config.enabled:
            return InjectionResult()

        state = self.store.get(conversation_id)
        if state is None or not state.summary:
            return InjectionResult()

        user_message = latest_user_message(messages)
        query = user_message.text if user_message else None

        retrieved: List[RetrievalResult] = []
        if query and self.vector_block is not None:
            retrieved = await self.vector_block.aretrieve(query, state)
        elif not state.has_vectors:
            logger.info("当前聊天未启用向量化，仅使用摘要")

        text = compose_injection(state, retrieved, self.config.injection_template)
        return InjectionResult(text=text, query=query, retrieved=retrieved)

    def hide_compressed(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> List[Message]:
        """返回只保留最近 keep_recent_messages 条的新列表"""
        messages = list(messages)
        if not (self.config.enabled and self.config.hide_compressed_messages):
            return messages

        state = self.store.get(conversation_id)
        if state is None or not state.summary:
            return messages

        keep_recent = self.config.keep_recent_messages
        if len(messages) <= keep_recent:
            return messages

        remove_count = len(messages) - keep_recent
        logger.info("已隐藏 %d 条已压缩的消息，保留 %d 条", remove_count, keep_recent)
        return messages[remove_count:]


def create_compressor(
    config: Optional[CompressorConfig] = None,
    llm: Optional[LLM] = None,
    embed_model: Optional[BaseEmbedding] = None,
    persist_dir: Optional[Union[str, Path]] = None,
) -> ChatCompressor:
    """
    创建配置好的 ChatCompressor

    Args:
        config: 配置对象，默认使用 CompressorConfig()
        llm: 用于摘要的 LLM，默认创建 OpenRouter 实例
        embed_model: Embedding 模型；未提供且没有 API key 时只使用摘要
        persist_dir: 压缩状态的保存目录，默认只保存在内存中
    """
    config = config or CompressorConfig()

    if llm is None:
        llm = create_llm(
            model=config.llm_model,
            api_key=config.openrouter_api_key,
            api_base=config.openrouter_base_url,
        )

    if embed_model is None and config.has_api_key:
        embed_model = create_embedding(
            model=config.embed_model,
            api_key=config.openrouter_api_key,
            api_base=config.openrouter_base_url,
        )
    elif embed_model is None:
        logger.warning("未设置 API Key，向量化和检索不可用")

    return ChatCompressor(
        llm=llm,
        config=config,
        embed_model=embed_model,
        store=CompressionStore(persist_dir),
    )
