from .hierarchy import DEFAULT_GENESIS_HASH, EMPTY_HASH, Header, Level
from .termini import resolve_termini
from .walker import BadHashes, HierarchyWalker

__version__ = "0.1.0"

__all__ = [
    "BadHashes",
    "DEFAULT_GENESIS_HASH",
    "EMPTY_HASH",
    "Header",
    "HierarchyWalker",
    "Level",
    "resolve_termini",
]
