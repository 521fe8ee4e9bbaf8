"""纯函数工具：摘要文本精简、余弦相似度"""

import re
from typing import Optional, Sequence

import numpy as np

# 标记清理（先于空白/分隔符处理，保证结果幂等）
_MARKUP_PATTERNS = [
    (re.compile(r"\*+"), ""),
    (re.compile(r"#+[ \t]*"), ""),
    (re.compile(r"_+"), ""),
    (re.compile(r"[\"“”'‘’]"), ""),
]
_EMPTY_BRACKETS = re.compile(r"\(\s*\)|\[\s*\]")

# 空白与分隔符处理
_DELIMITER_PATTERNS = [
    (re.compile(r"[\r\n]+"), ";"),
    (re.compile(r"\s+"), " "),
    (re.compile(r"\s*;\s*"), ";"),
    (re.compile(r"\s*:\s*"), ":"),
    (re.compile(r"\s+,"), ","),
    (re.compile(r";+"), ";"),
    (re.compile(r"^;+|;+$"), ""),
]


def compress_summary_text(text: Optional[str]) -> str:
    """
    精简摘要文本以节省 token

    多行 → 单行分号分隔；去掉 markdown 强调/标题/下划线、引号、空括号；
    合并空白和重复分隔符。结果不含换行，重复调用结果不变。
    """
    if not text:
        return ""

    result = text
    for pattern, repl in _MARKUP_PATTERNS:
        result = pattern.sub(repl, result)

    # 嵌套的空括号需要反复删除，例如 "([])"
    while True:
        stripped = _EMPTY_BRACKETS.sub("", result)
        if stripped == result:
            break
        result = stripped

    for pattern, repl in _DELIMITER_PATTERNS:
        result = pattern.sub(repl, result)

    return result.strip()


def cosine_similarity(
    a: Optional[Sequence[float]],
    b: Optional[Sequence[float]],
) -> float:
    """
    计算两个向量的余弦相似度

    任一向量缺失、长度不同或模为 0 时返回 0。只用于排序，不代表概率。
    """
    if a is None or b is None:
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.ndim != 1 or va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # 浮点误差可能略超出 [-1, 1]
    return max(-1.0, min(1.0, similarity))
