"""
Formula evaluation for noteguard.

This module holds the part of noteguard with real algorithmic shape: a
tree-walking interpreter over prohibited-note formulas, plus the keyword
and blurhash capabilities its leaf predicates rely on.

Key concepts:
    - FormulaEvaluator: Decides whether a note matches a formula
    - KeywordMatcher: Pattern matching used by the *MatchOf predicates
    - decode_blurhash: Perceptual hash decoding used by hasLikelyBlurhash

The evaluator is fail-open: an error anywhere in a formula makes the whole
verdict "not prohibited".
"""

from noteguard.policy.engine import FormulaEvaluator
from noteguard.policy.keywords import KeywordFilter, KeywordMatcher
from noteguard.policy.perceptual import blurhash_distance, decode_blurhash

__all__ = [
    "FormulaEvaluator",
    "KeywordFilter",
    "KeywordMatcher",
    "blurhash_distance",
    "decode_blurhash",
]
