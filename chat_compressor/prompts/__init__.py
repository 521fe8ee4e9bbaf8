"""Prompt 模板"""

from .compression import (
    DEFAULT_INJECTION_TEMPLATE,
    DEFAULT_SUMMARY_PROMPT,
    NO_RETRIEVED_MARKER,
    RECOMPRESS_PROMPT,
    RECOMPRESS_SYSTEM_PROMPT,
    SUMMARY_SEPARATOR,
)

__all__ = [
    "DEFAULT_INJECTION_TEMPLATE",
    "DEFAULT_SUMMARY_PROMPT",
    "NO_RETRIEVED_MARKER",
    "RECOMPRESS_PROMPT",
    "RECOMPRESS_SYSTEM_PROMPT",
    "SUMMARY_SEPARATOR",
]
