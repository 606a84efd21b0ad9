"""Segmentation strategies.

Each strategy maps ``(document, config, separators)`` to a list of
:class:`Piece` spans over the document text.
"""

from .base import Piece, StrategyFn
from .code import split_code
from .domain import split_domain
from .fixed import split_fixed
from .recursive import split_recursive
from .semantic import split_semantic

__all__ = [
    "Piece",
    "StrategyFn",
    "split_code",
    "split_domain",
    "split_fixed",
    "split_recursive",
    "split_semantic",
]
