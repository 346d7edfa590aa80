from __future__ import annotations

import random
import time
from typing import Any

import requests

from .hierarchy import BadHashError, Header, normalize_hash


USER_AGENT = "badhashes/1.0"

HEADER_BY_HASH_METHOD = "quai_getHeaderByHash"
HEADER_BY_NUMBER_METHOD = "quai_getHeaderByNumber"
PROBE_METHOD = "web3_clientVersion"


class RpcError(BadHashError):
    pass


class TransientRpcError(RpcError):
    pass


class LookupFailure(RpcError):
    pass


class ConnectivityFailure(RpcError):
    pass


def _should_retry_rpc_error(err: Any) -> bool:
    # Heuristic: retry rate-limits / transient infra errors, fail fast on bad requests.
    if not isinstance(err, dict):
        return True
    code = err.get("code")
    msg = str(err.get("message", "")).lower()

    if "execution reverted" in msg or "revert" in msg:
        return False

    # JSON-RPC "hard" errors / likely non-transient.
    if code in {-32601, -32602, -32603}:
        return False

    if code in {-32000, -32005}:
        return True

    return True


def rpc_call(
    rpc_url: str,
    method: str,
    params: list[Any],
    *,
    timeout_s: float = 30,
    max_attempts: int = 6,
    backoff_base_s: float = 0.5,
) -> Any:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    headers = {"User-Agent": USER_AGENT}

    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.post(rpc_url, json=payload, timeout=timeout_s, headers=headers)
            if resp.status_code in {429, 500, 502, 503, 504}:
                raise requests.HTTPError(f"RPC HTTP {resp.status_code}", response=resp)
            resp.raise_for_status()

            data = resp.json()
            if not isinstance(data, dict):
                raise RpcError(f"{method}: unexpected JSON-RPC response: {str(data)[:200]}")
            if "error" in data:
                err = data["error"]
                if _should_retry_rpc_error(err) and attempt < max_attempts:
                    raise TransientRpcError(f"{method}: {err}")
                raise RpcError(f"{method}: {err}")
            return data.get("result")
        except (requests.RequestException, ValueError, TransientRpcError) as e:
            if isinstance(e, requests.HTTPError) and getattr(e, "response", None) is not None:
                status = int(e.response.status_code)
                if 400 <= status < 500 and status != 429:
                    raise RpcError(f"{method} on {rpc_url}: HTTP {status}") from e
            if attempt >= max_attempts:
                raise RpcError(f"{method} on {rpc_url} failed after {attempt} attempts: {e}") from e

            sleep_s = backoff_base_s * (2 ** (attempt - 1)) + random.uniform(0, 0.25)
            time.sleep(sleep_s)

    raise RpcError(f"{method} on {rpc_url}: no attempts made")


class RpcClient:
    """Header lookups against one chain endpoint."""

    def __init__(self, rpc_url: str, timeout_s: float = 30, max_attempts: int = 6):
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts

    def __repr__(self) -> str:
        return f"RpcClient({self.rpc_url!r})"

    def call(self, method: str, params: list[Any]) -> Any:
        return rpc_call(
            self.rpc_url, method, params, timeout_s=self.timeout_s, max_attempts=self.max_attempts
        )

    def header_by_hash(self, block_hash: str) -> Header:
        h = normalize_hash(block_hash)
        raw = self.call(HEADER_BY_HASH_METHOD, [h])
        if raw is None:
            raise LookupFailure(f"unknown header {h} on {self.rpc_url}")
        return Header.from_rpc(raw)

    def header_by_number(self, number: int) -> Header:
        if number < 0:
            raise ValueError(f"negative block number: {number}")
        raw = self.call(HEADER_BY_NUMBER_METHOD, [hex(number)])
        if raw is None:
            raise LookupFailure(f"no header at height {number} on {self.rpc_url}")
        return Header.from_rpc(raw)


def dial(rpc_url: str, *, timeout_s: float = 30) -> RpcClient:
    """Open a client and confirm the endpoint answers. Single attempt."""
    client = RpcClient(rpc_url, timeout_s=timeout_s)
    try:
        rpc_call(rpc_url, PROBE_METHOD, [], timeout_s=timeout_s, max_attempts=1)
    except (RpcError, requests.RequestException, ValueError) as e:
        raise ConnectivityFailure(f"cannot reach {rpc_url}: {e}") from e
    return client
