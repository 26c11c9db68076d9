"""
Title conversion: the rule engine and the format-preserving feed rewriter.
"""

from .rules import TitleRule, CompiledRule, TitleConverter, build_converter, default_rules
from .rewriter import FeedRewriter, TitleOccurrence, TextStyle

__all__ = [
    "TitleRule",
    "CompiledRule",
    "TitleConverter",
    "build_converter",
    "default_rules",
    "FeedRewriter",
    "TitleOccurrence",
    "TextStyle",
]
