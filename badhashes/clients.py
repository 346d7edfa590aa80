"""
Connection bootstrap for one slice of the hierarchy.

A slice is one Prime endpoint, R Region endpoints and R x R Zone endpoints.
`ClientPool.establish_all` keeps sweeping the endpoints in a fixed order until
every one of them has answered once; endpoints that answered are not dialled
again.
"""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Tuple

from .config import Config
from .hierarchy import BadHashError, Level
from .rpc import ConnectivityFailure, dial


class ConnectionCancelled(BadHashError):
    pass


@dataclass
class NodeClient:
    url: str
    tier: Level
    client: Any = None
    connected: bool = False
    attempts: int = 0
    last_error: str = ""


@dataclass(frozen=True)
class ConnectivityState:
    sweep: int
    connected: int
    total: int
    pending: Tuple[str, ...]

    @property
    def fully_connected(self) -> bool:
        return self.connected == self.total


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


class ClientPool:
    def __init__(self, prime_url: str, region_urls: List[str], zone_urls: List[List[str]]):
        r = len(region_urls)
        if r == 0:
            raise ValueError("at least one region url is required")
        if len(zone_urls) != r or any(len(row) != r for row in zone_urls):
            raise ValueError(f"zone urls must be a {r}x{r} grid")
        self.branching = r
        self.prime = NodeClient(prime_url, Level.TOP)
        self.regions = [NodeClient(u, Level.REGION) for u in region_urls]
        self.zones = [[NodeClient(u, Level.ZONE) for u in row] for row in zone_urls]
        self.sweeps = 0

    @classmethod
    def from_config(cls, config: Config) -> "ClientPool":
        return cls(config.prime_url, config.region_urls, config.zone_urls)

    def nodes(self) -> Iterator[NodeClient]:
        # Prime, then each region followed by its zones.
        yield self.prime
        for i in range(self.branching):
            yield self.regions[i]
            yield from self.zones[i]

    def fully_connected(self) -> bool:
        return all(n.connected for n in self.nodes())

    def state(self) -> ConnectivityState:
        nodes = list(self.nodes())
        return ConnectivityState(
            sweep=self.sweeps,
            connected=sum(1 for n in nodes if n.connected),
            total=len(nodes),
            pending=tuple(n.url for n in nodes if not n.connected),
        )

    def prime_client(self) -> Any:
        return self.prime.client

    def region_client(self, region: int) -> Any:
        return self.regions[region].client

    def zone_client(self, region: int, zone: int) -> Any:
        return self.zones[region][zone].client

    def sweep(self, dial_fn: Callable[[str], Any], cancel: Optional[threading.Event] = None) -> int:
        """Dial every endpoint not yet connected. Returns the number of new connections."""
        self.sweeps += 1
        newly = 0
        for node in self.nodes():
            if node.connected:
                continue
            if cancel is not None and cancel.is_set():
                raise ConnectionCancelled(f"cancelled during sweep {self.sweeps}")
            node.attempts += 1
            try:
                node.client = dial_fn(node.url)
            except ConnectivityFailure as e:
                node.last_error = str(e)
                _log(f"Unable to connect to node: {node.tier.label} {node.url}")
                continue
            node.connected = True
            node.last_error = ""
            newly += 1
        return newly

    def establish_all(
        self,
        dial_fn: Callable[[str], Any] = dial,
        *,
        cancel: Optional[threading.Event] = None,
        retry_base_s: float = 0.5,
        retry_max_s: float = 30.0,
        max_sweeps: Optional[int] = None,
        on_progress: Optional[Callable[[ConnectivityState], None]] = None,
    ) -> "ClientPool":
        while not self.fully_connected():
            if max_sweeps is not None and self.sweeps >= max_sweeps:
                raise ConnectionCancelled(
                    f"gave up after {self.sweeps} sweeps; unreachable: {', '.join(self.state().pending)}"
                )
            self.sweep(dial_fn, cancel)
            st = self.state()
            if on_progress is not None:
                on_progress(st)
            if st.fully_connected:
                break
            _log(f"[sweep {st.sweep}] {st.connected}/{st.total} nodes connected")

            delay = min(retry_base_s * (2 ** (st.sweep - 1)), retry_max_s)
            if cancel is not None:
                if cancel.wait(delay):
                    raise ConnectionCancelled(f"cancelled after {st.sweep} sweeps")
            elif delay > 0:
                time.sleep(delay)
        return self


def connect_to_slice(
    config: Config,
    *,
    dial_fn: Optional[Callable[[str], Any]] = None,
    cancel: Optional[threading.Event] = None,
    on_progress: Optional[Callable[[ConnectivityState], None]] = None,
) -> ClientPool:
    if dial_fn is None:
        def dial_fn(url: str) -> Any:
            return dial(url, timeout_s=config.rpc_timeout_s)

    pool = ClientPool.from_config(config)
    return pool.establish_all(
        dial_fn,
        cancel=cancel,
        retry_base_s=config.retry_base_s,
        retry_max_s=config.retry_max_s,
        on_progress=on_progress,
    )
