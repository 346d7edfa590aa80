"""
Top-down propagation of one bad Prime block through every Region and Zone.

Tiers depend on each other strictly top-down; sibling branches within a tier
are independent and are looked up concurrently, joined before the next tier.
"""

from __future__ import annotations

import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .clients import ClientPool
from .config import Config
from .hierarchy import DEFAULT_GENESIS_HASH, Level, normalize_hash
from .termini import HeaderSource, WalkCancelled, resolve_termini


T = TypeVar("T")


@dataclass(frozen=True)
class BadHashes:
    prime: str
    regions: List[str]
    zones: List[List[str]]
    prime_termini: List[str]
    region_termini: List[List[str]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prime": self.prime,
            "regions": list(self.regions),
            "zones": [list(row) for row in self.zones],
            "prime_termini": list(self.prime_termini),
            "region_termini": [list(row) for row in self.region_termini],
        }


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


def next_block_hash(client: HeaderSource, terminus: str, level: Level) -> str:
    """Hash of the block right after `terminus` on the client's own chain."""
    header = client.header_by_hash(terminus)
    return client.header_by_number(header.number(level) + 1).hash


class HierarchyWalker:
    def __init__(
        self,
        prime: HeaderSource,
        regions: List[HeaderSource],
        zones: List[List[HeaderSource]],
        *,
        genesis: str = DEFAULT_GENESIS_HASH,
        max_steps: int = 100_000,
        workers: int = 0,
        cancel: Optional[threading.Event] = None,
    ):
        r = len(regions)
        if r == 0 or len(zones) != r or any(len(row) != r for row in zones):
            raise ValueError(f"need R region clients and an R x R zone grid, got {r} and {[len(z) for z in zones]}")
        self.prime = prime
        self.regions = list(regions)
        self.zones = [list(row) for row in zones]
        self.branching = r
        self.genesis = normalize_hash(genesis)
        self.max_steps = max_steps
        self.workers = workers if workers > 0 else r * r
        self.cancel = cancel

    @classmethod
    def from_pool(cls, pool: ClientPool, config: Optional[Config] = None, **kwargs: Any) -> "HierarchyWalker":
        r = pool.branching
        if config is not None:
            kwargs.setdefault("genesis", config.genesis_hash)
            kwargs.setdefault("max_steps", config.max_walk_steps)
            kwargs.setdefault("workers", config.workers)
        return cls(
            pool.prime_client(),
            [pool.region_client(i) for i in range(r)],
            [[pool.zone_client(i, j) for j in range(r)] for i in range(r)],
            **kwargs,
        )

    def _termini(self, client: HeaderSource, level: Level, reference: str) -> List[str]:
        return resolve_termini(
            client,
            level,
            reference,
            branching=self.branching,
            genesis=self.genesis,
            max_steps=self.max_steps,
            cancel=self.cancel,
        )

    def _fan_out(self, ex: ThreadPoolExecutor, fn: Callable[..., T], args: List[tuple]) -> List[T]:
        if self.cancel is not None and self.cancel.is_set():
            raise WalkCancelled(f"propagation cancelled before {getattr(fn, '__name__', fn)}")
        futures = [ex.submit(fn, *a) for a in args]
        try:
            # First failure aborts the tier; there is no partial result.
            return [f.result() for f in futures]
        except BaseException:
            for f in futures:
                f.cancel()
            raise

    def propagate(self, bad_hash: str) -> BadHashes:
        r = self.branching
        bad_hash = normalize_hash(bad_hash)

        bad_header = self.prime.header_by_hash(bad_hash)
        seed = bad_header.parent_hash(Level.TOP)
        prime_termini = self._termini(self.prime, Level.TOP, seed)
        _log(f"Prime termini from {seed}: {prime_termini}")

        with ThreadPoolExecutor(max_workers=self.workers) as ex:
            region_termini = self._fan_out(
                ex,
                self._termini,
                [(self.regions[i], Level.REGION, prime_termini[i]) for i in range(r)],
            )
            region_bad = self._fan_out(
                ex,
                next_block_hash,
                [(self.regions[i], prime_termini[i], Level.REGION) for i in range(r)],
            )
            _log(f"Region bad hashes: {region_bad}")

            flat = self._fan_out(
                ex,
                next_block_hash,
                [(self.zones[i][j], region_termini[i][j], Level.ZONE) for i in range(r) for j in range(r)],
            )
        zone_bad = [flat[i * r : (i + 1) * r] for i in range(r)]

        return BadHashes(
            prime=bad_hash,
            regions=region_bad,
            zones=zone_bad,
            prime_termini=prime_termini,
            region_termini=region_termini,
        )
