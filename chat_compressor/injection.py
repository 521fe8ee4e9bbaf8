"""注入文本组装"""

from typing import Optional, Sequence

from llama_index.core.prompts import PromptTemplate

from .prompts.compression import DEFAULT_INJECTION_TEMPLATE, NO_RETRIEVED_MARKER
from .state import CompressionState, RetrievalResult


def compose_injection(
    state: Optional[CompressionState],
    results: Optional[Sequence[RetrievalResult]] = None,
    template: str = DEFAULT_INJECTION_TEMPLATE,
) -> str:
    """
    用摘要和检索结果填充注入模板

    没有摘要时返回空字符串；没有检索结果时用固定提示代替。
    """
    if state is None or not state.summary:
        return ""

    retrieved = "\n\n".join(r.text for r in results or [])
    return PromptTemplate(template).format(
        summary=state.summary,
        retrieved=retrieved or NO_RETRIEVED_MARKER,
    )


def format_retrieved(results: Optional[Sequence[RetrievalResult]]) -> str:
    """检索结果的展示文本"""
    if not results:
        return "未找到相关内容"

    separator = "\n\n" + "─" * 40 + "\n\n"
    return separator.join(
        f"[#{rank} 相似度: {r.similarity * 100:.1f}%]\n{r.text}"
        for rank, r in enumerate(results, start=1)
    )
