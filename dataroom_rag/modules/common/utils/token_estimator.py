"""Token estimation for chunk sizing and embedding usage accounting.

The local embedding model doesn't report token usage, so usage totals and
chunk token limits are computed with a heuristic estimator: word count scaled by a
tokenizer-family multiplier, adjusted for punctuation, markup, numbers and
line structure.
"""

import re
from typing import Iterable


class TokenEstimator:
    """Heuristic token counter.

    Example:
        >>> TokenEstimator.estimate_tokens("Quarterly revenue grew 12%.")
        6
    """

    TOKENIZER_MULTIPLIERS = {
        "mpnet": 1.3,
        "minilm": 1.3,
        "bge": 1.3,
        "openai": 1.3,
        "text-embedding": 1.3,
        "e5": 1.35,
        "default": 1.3,
    }

    _PUNCTUATION = re.compile(r'[.!?,:;(){}[\]"\'-]')
    _MARKDOWN_TABLE_CELL = re.compile(r"\|")
    _MARKDOWN_HEADER = re.compile(r"^#{1,6}\s", re.MULTILINE)
    _URL = re.compile(r"https?://\S+")
    _NUMBER = re.compile(r"\d+")
    _SPECIAL = re.compile(r'[^\w\s.,!?;:\'"()|#-]')

    @staticmethod
    def estimate_tokens(text: str, model: str = "default") -> int:
        """Estimate the token count of ``text``.

        Args:
            text: Input text
            model: Model name, used to pick a tokenizer-family multiplier

        Returns:
            Estimated token count; 0 for blank text, otherwise at least 1
        """
        if not text or not text.strip():
            return 0

        words = len(text.split())
        base_estimate = words * TokenEstimator._get_multiplier(model)

        adjustments = (
            len(TokenEstimator._PUNCTUATION.findall(text)) * 0.3
            + TokenEstimator._markup_adjustment(text)
            + len(TokenEstimator._NUMBER.findall(text)) * 0.2
            + len(TokenEstimator._SPECIAL.findall(text)) * 0.5
            + text.count("\n") * 0.5
        )

        return max(1, int(base_estimate + adjustments))

    @staticmethod
    def estimate_total(texts: Iterable[str], model: str = "default") -> int:
        """Sum of ``estimate_tokens`` over ``texts``."""
        return sum(TokenEstimator.estimate_tokens(text, model) for text in texts)

    @staticmethod
    def _get_multiplier(model: str) -> float:
        model_lower = model.lower()
        for key, multiplier in TokenEstimator.TOKENIZER_MULTIPLIERS.items():
            if key in model_lower:
                return multiplier
        return TokenEstimator.TOKENIZER_MULTIPLIERS["default"]

    @staticmethod
    def _markup_adjustment(text: str) -> float:
        """Extracted markdown carries table pipes, headers and links."""
        return (
            len(TokenEstimator._MARKDOWN_TABLE_CELL.findall(text)) * 0.5
            + len(TokenEstimator._MARKDOWN_HEADER.findall(text)) * 1.0
            + len(TokenEstimator._URL.findall(text)) * 3.0
        )
