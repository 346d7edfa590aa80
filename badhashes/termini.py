from __future__ import annotations

import threading
from typing import List, Optional, Protocol

from .hierarchy import (
    DEFAULT_BRANCHING,
    DEFAULT_GENESIS_HASH,
    BadHashError,
    Header,
    HeaderFormatError,
    Level,
    empty_vector,
    is_complete,
    is_empty,
    normalize_hash,
)


class HeaderSource(Protocol):
    def header_by_hash(self, block_hash: str) -> Header: ...

    def header_by_number(self, number: int) -> Header: ...


class StuckWalk(BadHashError):
    def __init__(self, level: Level, reference: str, steps: int, termini: List[str]):
        super().__init__(
            f"{level.label} walk from {reference} did not finish after {steps} steps "
            f"(genesis not reached); partial termini: {termini}"
        )
        self.level = level
        self.reference = reference
        self.steps = steps
        self.termini = termini


class WalkCancelled(BadHashError):
    pass


def _set_branch(termini: List[str], header: Header, level: Level, branching: int, *, overwrite: bool) -> None:
    idx = header.branch(level)
    if not 0 <= idx < branching:
        raise HeaderFormatError(
            f"header {header.hash} has {level.label} coordinate {idx}, expected 0..{branching - 1}"
        )
    if overwrite or is_empty(termini[idx]):
        termini[idx] = header.hash


def resolve_termini(
    client: HeaderSource,
    level: Level,
    reference: str,
    *,
    branching: int = DEFAULT_BRANCHING,
    genesis: str = DEFAULT_GENESIS_HASH,
    max_steps: int = 100_000,
    cancel: Optional[threading.Event] = None,
) -> List[str]:
    """Nearest ancestor of `reference` on every sibling branch at `level`.

    Returns branching+1 hashes: slot i is the most recent block on branch i
    found walking back along the level's parent pointers, and the last slot
    is `reference` itself. Once genesis is reached every unfilled slot gets
    the genesis hash.
    """
    reference = normalize_hash(reference)
    genesis = normalize_hash(genesis)
    termini = empty_vector(branching)
    termini[branching] = reference
    if level == Level.ZONE:
        # Leaf chains have no descendants to disambiguate.
        return termini

    header = client.header_by_hash(reference)
    _set_branch(termini, header, level, branching, overwrite=True)

    steps = 0
    while not is_complete(termini):
        if header.hash == genesis:
            termini = [genesis if is_empty(t) else t for t in termini]
            break
        if steps >= max_steps:
            raise StuckWalk(level, reference, steps, termini)
        if cancel is not None and cancel.is_set():
            raise WalkCancelled(f"{level.label} walk from {reference} cancelled after {steps} steps")
        header = client.header_by_hash(header.parent_hash(level))
        steps += 1
        _set_branch(termini, header, level, branching, overwrite=False)
    return termini
