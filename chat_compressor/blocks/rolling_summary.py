"""Rolling Summary Block：增量摘要"""

import logging
from typing import List, Optional, Sequence

from llama_index.core.bridge.pydantic import BaseModel, ConfigDict, Field
from llama_index.core.llms import LLM
from llama_index.core.prompts import PromptTemplate

from ..config import CompressorConfig
from ..models import EmptyResponseError, generate_text
from ..prompts.compression import (
    DEFAULT_SUMMARY_PROMPT,
    RECOMPRESS_PROMPT,
    RECOMPRESS_SYSTEM_PROMPT,
    SUMMARY_SEPARATOR,
)
from ..state import (
    CompressionResult,
    CompressionState,
    CompressStatus,
    Message,
    now_ms,
)
from ..utils import compress_summary_text

logger = logging.getLogger(__name__)


class RollingSummaryBlock(BaseModel):
    """
    滚动摘要块

    接收尚未压缩的消息区间，生成增量摘要并拼接到已有摘要之后。

    工作流程：
    1. 过滤系统消息和空消息 → LLM → 精简后的新摘要（失败则整体放弃）
    2. 旧摘要 + 分隔符 + 新摘要
    3. 总摘要超长 → LLM 再压缩（失败则保留超长摘要）
    4. 返回新状态，由调用方一次性提交
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(default="ConversationSummary")
    llm: LLM = Field(description="用于生成摘要的 LLM")

    summary_prompt: str = Field(
        default=DEFAULT_SUMMARY_PROMPT,
        description="摘要提示词模板，{words} 为字数上限"
    )
    summary_max_words: int = Field(default=500, ge=0)
    max_total_summary_length: int = Field(
        default=2000,
        gt=0,
        description="总摘要最大字符数，超过则再压缩"
    )

    @classmethod
    def from_config(cls, llm: LLM, config: CompressorConfig) -> "RollingSummaryBlock":
        return cls(
            llm=llm,
            summary_prompt=config.summary_prompt,
            summary_max_words=config.summary_max_words,
            max_total_summary_length=config.max_total_summary_length,
        )

    async def acompress(
        self,
        state: Optional[CompressionState],
        messages: Sequence[Message],
        end_index: int,
    ) -> CompressionResult:
        """
        压缩 [state.compressed_until_index, end_index) 区间的消息

        Args:
            state: 当前压缩状态，首次压缩为 None
            messages: 完整的消息序列（只读）
            end_index: 压缩区间的结束位置（不含）

        Returns:
            COMPLETED 时 result.state 为新状态（向量原样保留）；
            其余情况 state 不变。
        """
        if end_index < 0 or end_index > len(messages):
            raise ValueError(
                f"end_index {end_index} outside message range 0..{len(messages)}"
            )

        start_index = state.compressed_until_index if state else 0
        if end_index <= start_index:
            return CompressionResult(
                status=CompressStatus.NOTHING_TO_DO,
                state=state,
                reason="没有新的消息需要压缩",
            )

        new_messages = self.filter_messages(messages[start_index:end_index])
        if not new_messages:
            return CompressionResult(
                status=CompressStatus.NOTHING_TO_DO,
                state=state,
                reason="过滤后没有新消息需要压缩",
            )

        is_incremental = start_index > 0
        logger.info(
            "%s压缩: %d 条新消息 (索引 %d - %d)",
            "增量" if is_incremental else "首次",
            len(new_messages),
            start_index,
            end_index,
        )

        try:
            new_summary = await self._generate_summary(new_messages)
        except Exception as e:
            logger.error("摘要生成失败", exc_info=True)
            return CompressionResult(
                status=CompressStatus.FAILED,
                state=state,
                reason=f"摘要生成失败: {e}",
            )

        old_summary = state.summary if state else ""
        total_summary = self._merge(old_summary, new_summary)

        notices: List[str] = []
        recompress_failed = False
        if len(total_summary) > self.max_total_summary_length:
            logger.info(
                "总摘要 %d 字超过阈值 %d，正在压缩总摘要",
                len(total_summary),
                self.max_total_summary_length,
            )
            try:
                total_summary = await self._recompress(total_summary)
                logger.info("总摘要已压缩至 %d 字", len(total_summary))
            except Exception:
                logger.warning("压缩总摘要失败，保留原摘要", exc_info=True)
                recompress_failed = True
                notices.append("压缩总摘要失败，保留原摘要")

        new_state = CompressionState(
            summary=total_summary,
            compressed_until_index=end_index,
            compressed_message_count=(
                (state.compressed_message_count if state else 0) + len(new_messages)
            ),
            vectors=list(state.vectors) if state else [],
            timestamp=now_ms(),
        )
        return CompressionResult(
            status=CompressStatus.COMPLETED,
            state=new_state,
            new_message_count=len(new_messages),
            recompress_failed=recompress_failed,
            notices=notices,
        )

    @staticmethod
    def filter_messages(messages: Sequence[Message]) -> List[Message]:
        """去掉系统消息和空消息"""
        return [m for m in messages if not m.is_system and m.text]

    def _format_messages(self, messages: Sequence[Message]) -> str:
        """格式化消息列表为文本"""
        return "\n".join(m.render(":") for m in messages)

    async def _generate_summary(self, messages: Sequence[Message]) -> str:
        chat_text = self._format_messages(messages)
        system_prompt = PromptTemplate(self.summary_prompt).format(
            words=self.summary_max_words
        )
        logger.debug("聊天文本长度: %d", len(chat_text))

        raw_summary = await generate_text(self.llm, chat_text, system_prompt)
        summary = compress_summary_text(raw_summary)
        if not summary:
            raise EmptyResponseError("summary is empty after cleanup")

        logger.info("摘要生成成功，原始长度 %d，精简后 %d", len(raw_summary), len(summary))
        return summary

    def _merge(self, old_summary: str, new_summary: str) -> str:
        """拼接新旧摘要；旧摘要不再重新精简"""
        if not old_summary:
            return new_summary
        merged = old_summary + SUMMARY_SEPARATOR + new_summary
        logger.info(
            "合并摘要: 旧%d字 + 新%d字 = %d字",
            len(old_summary),
            len(new_summary),
            len(merged),
        )
        return merged

    async def _recompress(self, summary: str) -> str:
        prompt = PromptTemplate(RECOMPRESS_PROMPT).format(
            target_length=self.max_total_summary_length,
            summary=summary,
        )
        compressed = compress_summary_text(
            await generate_text(self.llm, prompt, RECOMPRESS_SYSTEM_PROMPT)
        )
        if not compressed:
            raise EmptyResponseError("re-compressed summary is empty")
        return self._fit_length(compressed)

    def _fit_length(self, summary: str) -> str:
        """LLM 未遵守长度要求时，在最后一个分号处截断"""
        limit = self.max_total_summary_length
        if len(summary) <= limit:
            return summary
        logger.warning("再压缩结果 %d 字仍超过 %d，截断", len(summary), limit)
        cut = summary[:limit]
        boundary = cut.rfind(";")
        return cut[:boundary] if boundary > 0 else cut
