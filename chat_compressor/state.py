"""数据模型：消息、向量条目、检索结果、压缩状态"""

import time
from datetime import datetime
from enum import Enum
from typing import List, Optional

from llama_index.core.base.llms.types import ChatMessage, MessageRole, TextBlock
from llama_index.core.bridge.pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    """对话中的一条消息（只读）"""

    model_config = ConfigDict(frozen=True)

    name: str
    text: str = ""
    is_user: bool = False
    is_system: bool = False

    def render(self, separator: str = ":") -> str:
        return f"{self.name}{separator}{self.text}"

    @classmethod
    def from_chat_message(
        cls, message: ChatMessage, name: Optional[str] = None
    ) -> "Message":
        """从 LlamaIndex ChatMessage 转换"""
        text = " ".join(
            block.text for block in message.blocks if isinstance(block, TextBlock)
        )
        return cls(
            name=name or message.role.value,
            text=text,
            is_user=message.role == MessageRole.USER,
            is_system=message.role == MessageRole.SYSTEM,
        )


class VectorEntry(BaseModel):
    """已向量化的消息"""

    text: str
    vector: List[float]
    index: int = Field(ge=0, description="向量化时的消息位置，仅用于追溯")


class RetrievalResult(BaseModel):
    """单次检索结果，不持久化"""

    text: str
    index: int
    similarity: float


class CompressionState(BaseModel):
    """
    单个对话的压缩状态

    JSON 形状使用 camelCase：
    {summary, compressedUntilIndex, compressedMessageCount, vectors, timestamp}
    """

    model_config = ConfigDict(populate_by_name=True)

    summary: str = ""
    compressed_until_index: int = Field(default=0, ge=0, alias="compressedUntilIndex")
    compressed_message_count: int = Field(
        default=0, ge=0, alias="compressedMessageCount"
    )
    vectors: List[VectorEntry] = Field(default_factory=list)
    timestamp: int = Field(default_factory=now_ms, description="最后修改时间（毫秒）")

    @property
    def has_summary(self) -> bool:
        return bool(self.summary)

    @property
    def has_vectors(self) -> bool:
        return len(self.vectors) > 0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "CompressionState":
        return cls.model_validate_json(data)

    def describe(self) -> str:
        """状态展示文本"""
        if not self.summary:
            return "暂无压缩数据"
        updated = datetime.fromtimestamp(self.timestamp / 1000).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        vectorized = "是" if self.has_vectors else "否"
        return (
            f"已压缩 {self.compressed_message_count} 条消息 | "
            f"向量化: {vectorized} ({len(self.vectors)}条) | "
            f"更新时间: {updated}"
        )


class CompressStatus(str, Enum):
    COMPLETED = "completed"
    NOTHING_TO_DO = "nothing_to_do"
    FAILED = "failed"


class CompressionResult(BaseModel):
    """一次压缩的结果；state 仅在 COMPLETED 时为新状态"""

    status: CompressStatus
    state: Optional[CompressionState] = None
    reason: str = ""
    new_message_count: int = 0
    new_vector_count: int = 0
    recompress_failed: bool = False
    notices: List[str] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == CompressStatus.COMPLETED
