"""Compressor Blocks"""

from .message_vector import MessageVectorBlock
from .rolling_summary import RollingSummaryBlock

__all__ = ["MessageVectorBlock", "RollingSummaryBlock"]
