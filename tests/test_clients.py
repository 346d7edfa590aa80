from __future__ import annotations

import threading
from collections import Counter

import pytest

from badhashes import clients
from badhashes.clients import ClientPool, ConnectionCancelled, connect_to_slice
from badhashes.config import Config
from badhashes.rpc import ConnectivityFailure


def _urls(r: int = 3):
    prime = "http://prime:8546"
    regions = [f"http://region{i}:8578" for i in range(r)]
    zones = [[f"http://zone{i}{j}:8610" for j in range(r)] for i in range(r)]
    return prime, regions, zones


class FlakyDialer:
    def __init__(self, failures: dict[str, int] | None = None, dead: set[str] | None = None):
        self.failures = dict(failures or {})
        self.dead = set(dead or ())
        self.calls: Counter[str] = Counter()

    def __call__(self, url: str) -> str:
        self.calls[url] += 1
        if url in self.dead:
            raise ConnectivityFailure(f"cannot reach {url}")
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise ConnectivityFailure(f"cannot reach {url}")
        return f"client:{url}"


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    delays: list[float] = []
    monkeypatch.setattr(clients.time, "sleep", delays.append)
    return delays


def test_all_endpoints_connected_in_one_sweep() -> None:
    pool = ClientPool(*_urls())
    dialer = FlakyDialer()

    pool.establish_all(dialer)

    assert pool.fully_connected()
    assert pool.sweeps == 1
    assert len(dialer.calls) == 13
    assert pool.zone_client(2, 1) == "client:http://zone21:8610"
    assert pool.prime_client() == "client:http://prime:8546"


def test_connected_endpoints_are_not_redialled(capsys) -> None:
    prime, regions, zones = _urls()
    pool = ClientPool(prime, regions, zones)
    dialer = FlakyDialer(failures={zones[1][2]: 2, regions[0]: 1})

    pool.establish_all(dialer, retry_base_s=0)

    assert pool.fully_connected()
    assert pool.sweeps == 3
    assert dialer.calls[prime] == 1
    assert dialer.calls[regions[0]] == 2
    assert dialer.calls[zones[1][2]] == 3
    err = capsys.readouterr().err
    assert f"Unable to connect to node: Zone {zones[1][2]}" in err
    assert f"Unable to connect to node: Region {regions[0]}" in err


def test_partial_connectivity_is_never_fully_connected() -> None:
    prime, regions, zones = _urls()
    pool = ClientPool(prime, regions, zones)
    pool.sweep(FlakyDialer(dead={zones[2][2]}))

    st = pool.state()
    assert not pool.fully_connected()
    assert not st.fully_connected
    assert st.connected == 12
    assert st.total == 13
    assert st.pending == (zones[2][2],)


def test_backoff_grows_and_is_capped(no_sleep) -> None:
    prime, regions, zones = _urls()
    pool = ClientPool(prime, regions, zones)
    dialer = FlakyDialer(failures={prime: 5})

    pool.establish_all(dialer, retry_base_s=1.0, retry_max_s=4.0)

    assert no_sleep == [1.0, 2.0, 4.0, 4.0, 4.0]


def test_progress_is_observable() -> None:
    prime, regions, zones = _urls(2)
    seen = []
    ClientPool(prime, regions, zones).establish_all(
        FlakyDialer(failures={regions[1]: 1}), retry_base_s=0, on_progress=seen.append
    )
    assert [(s.sweep, s.connected) for s in seen] == [(1, 6), (2, 7)]


def test_max_sweeps_bounds_the_loop() -> None:
    prime, regions, zones = _urls()
    pool = ClientPool(prime, regions, zones)
    with pytest.raises(ConnectionCancelled):
        pool.establish_all(FlakyDialer(dead={prime}), retry_base_s=0, max_sweeps=3)
    assert pool.sweeps == 3


def test_cancel_event_stops_retrying() -> None:
    prime, regions, zones = _urls()
    cancel = threading.Event()
    pool = ClientPool(prime, regions, zones)

    def on_progress(_state) -> None:
        cancel.set()

    with pytest.raises(ConnectionCancelled):
        pool.establish_all(FlakyDialer(dead={prime}), cancel=cancel, on_progress=on_progress)
    assert pool.sweeps == 1


def test_rejects_mismatched_shapes() -> None:
    prime, regions, zones = _urls()
    with pytest.raises(ValueError):
        ClientPool(prime, regions, zones[:2])
    with pytest.raises(ValueError):
        ClientPool(prime, regions, [row[:2] for row in zones])
    with pytest.raises(ValueError):
        ClientPool(prime, [], [])


def test_connect_to_slice_uses_config_shape() -> None:
    prime, regions, zones = _urls(2)
    cfg = Config(prime_url=prime, region_urls=regions, zone_urls=zones, retry_base_s=0)
    pool = connect_to_slice(cfg, dial_fn=FlakyDialer())
    assert pool.branching == 2
    assert pool.state().total == cfg.endpoint_count == 7
