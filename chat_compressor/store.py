"""压缩状态存储：每个对话一条记录"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from .state import CompressionState, now_ms

logger = logging.getLogger(__name__)


def conversation_key(chat_id: str, group_id: Optional[str] = None) -> str:
    """
    生成对话的唯一 key

    群聊按群 ID 区分，单聊按聊天 ID 区分。
    """
    prefix = f"group_{group_id}" if group_id else f"chat_{chat_id}"
    digest = hashlib.sha1(prefix.encode("utf-8")).hexdigest()[:16]
    return f"compressor_{digest}"


class CompressionStore:
    """
    压缩状态存储

    默认只在内存中保存；指定 persist_dir 后每个对话写入一个 JSON 文件。
    写入总是整体替换，读取只会看到已提交的状态。
    """

    def __init__(self, persist_dir: Optional[Union[str, Path]] = None):
        self._states: Dict[str, CompressionState] = {}
        self._persist_dir = Path(persist_dir) if persist_dir else None
        if self._persist_dir is not None:
            self._persist_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        assert self._persist_dir is not None
        safe = "".join(
            ch if ch.isalnum() or ch in "-._" else "_" for ch in conversation_id
        )
        return self._persist_dir / f"{safe or 'conversation'}.json"

    def get(self, conversation_id: str) -> Optional[CompressionState]:
        if conversation_id in self._states:
            return self._states[conversation_id]
        if self._persist_dir is None:
            return None

        path = self._path(conversation_id)
        if not path.exists():
            return None
        state = CompressionState.from_json(path.read_text(encoding="utf-8"))
        self._states[conversation_id] = state
        return state

    def save(self, conversation_id: str, state: CompressionState) -> None:
        if self._persist_dir is not None:
            self._write(self._path(conversation_id), state.to_json())
        self._states[conversation_id] = state

    def clear(self, conversation_id: str) -> None:
        self._states.pop(conversation_id, None)
        if self._persist_dir is not None:
            path = self._path(conversation_id)
            if path.exists():
                path.unlink()
        logger.info("压缩数据已清除: %s", conversation_id)

    def edit_summary(self, conversation_id: str, summary: str) -> CompressionState:
        """手动修改摘要，不影响向量和压缩边界"""
        existing = self.get(conversation_id)
        if existing is None:
            state = CompressionState(summary=summary)
        else:
            state = existing.model_copy(
                update={"summary": summary, "timestamp": now_ms()}
            )
        self.save(conversation_id, state)
        return state

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
