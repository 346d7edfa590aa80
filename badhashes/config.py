from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .hierarchy import DEFAULT_GENESIS_HASH, BadHashError, normalize_hash


CONFIG_ENV = "BADHASHES_CONFIG"
SEARCH_PATHS = (Path("config") / "config.yaml", Path("config.yaml"))


class ConfigError(BadHashError):
    pass


class ConfigMissing(ConfigError):
    pass


class ConfigMalformed(ConfigError):
    pass


@dataclass(frozen=True)
class Config:
    prime_url: str
    region_urls: list[str]
    zone_urls: list[list[str]]
    genesis_hash: str = DEFAULT_GENESIS_HASH
    max_walk_steps: int = 100_000
    rpc_timeout_s: float = 30.0
    retry_base_s: float = 0.5
    retry_max_s: float = 30.0
    workers: int = 0
    source: str = field(default="", compare=False)

    @property
    def branching(self) -> int:
        return len(self.region_urls)

    @property
    def endpoint_count(self) -> int:
        r = self.branching
        return 1 + r + r * r

    def validate(self) -> "Config":
        r = len(self.region_urls)
        if not self.prime_url:
            raise ConfigMalformed("primeurl is empty")
        if r == 0:
            raise ConfigMalformed("regionurls is empty")
        if len(self.zone_urls) != r:
            raise ConfigMalformed(f"zoneurls has {len(self.zone_urls)} rows, expected {r} (one per region)")
        for i, row in enumerate(self.zone_urls):
            if len(row) != r:
                raise ConfigMalformed(f"zoneurls[{i}] has {len(row)} entries, expected {r}")
        for url in [self.prime_url, *self.region_urls, *(u for row in self.zone_urls for u in row)]:
            if not isinstance(url, str) or not url.strip():
                raise ConfigMalformed(f"bad endpoint url: {url!r}")
            parts = urlsplit(url.strip())
            if parts.scheme not in {"http", "https"} or not parts.netloc:
                raise ConfigMalformed(f"endpoint {url!r} must be an http:// or https:// url")
        if self.max_walk_steps <= 0:
            raise ConfigMalformed(f"max_walk_steps must be positive, got {self.max_walk_steps}")
        if self.rpc_timeout_s <= 0 or self.retry_base_s < 0 or self.retry_max_s < self.retry_base_s:
            raise ConfigMalformed("timeouts/retry delays out of range")
        return self


def env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val else default


def _lower_keys(data: dict[str, Any]) -> dict[str, Any]:
    # viper-style: keys are case-insensitive, "_" optional.
    return {str(k).lower().replace("_", ""): v for k, v in data.items()}


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigMalformed(f"{name} must be a list of strings")
    return list(value)


def _number(data: dict[str, Any], key: str, default: Any, conv) -> Any:
    if key not in data or data[key] is None:
        return default
    try:
        return conv(data[key])
    except (TypeError, ValueError) as e:
        raise ConfigMalformed(f"{key}: {data[key]!r} is not a number") from e


def parse_config(data: Any, *, source: str = "") -> Config:
    if not isinstance(data, dict):
        raise ConfigMalformed(f"config root must be a mapping, got {type(data).__name__}")
    d = _lower_keys(data)

    prime_url = env("BADHASHES_PRIME_URL", d.get("primeurl") or "")
    if not isinstance(prime_url, str):
        raise ConfigMalformed("primeurl must be a string")
    region_urls = _str_list(d.get("regionurls"), "regionurls")
    zones_raw = d.get("zoneurls")
    if not isinstance(zones_raw, list):
        raise ConfigMalformed("zoneurls must be a list of lists")
    zone_urls = [_str_list(row, f"zoneurls[{i}]") for i, row in enumerate(zones_raw)]

    try:
        genesis = normalize_hash(env("BADHASHES_GENESIS_HASH", d.get("genesishash") or DEFAULT_GENESIS_HASH))
    except ValueError as e:
        raise ConfigMalformed(f"genesis_hash: {e}") from e

    max_steps_env = os.getenv("BADHASHES_MAX_WALK_STEPS")
    if max_steps_env:
        d["maxwalksteps"] = max_steps_env

    cfg = Config(
        prime_url=prime_url,
        region_urls=region_urls,
        zone_urls=zone_urls,
        genesis_hash=genesis,
        max_walk_steps=_number(d, "maxwalksteps", 100_000, int),
        rpc_timeout_s=_number(d, "rpctimeouts", 30.0, float),
        retry_base_s=_number(d, "retrybases", 0.5, float),
        retry_max_s=_number(d, "retrymaxs", 30.0, float),
        workers=_number(d, "workers", 0, int),
        source=source,
    )
    return cfg.validate()


def find_config(path: str | None = None) -> Path:
    if path:
        p = Path(path)
        if not p.is_file():
            raise ConfigMissing(f"config file not found: {p}")
        return p
    explicit = os.getenv(CONFIG_ENV)
    if explicit:
        return find_config(explicit)
    for p in SEARCH_PATHS:
        if p.is_file():
            return p
    raise ConfigMissing(f"no config file in {', '.join(str(p) for p in SEARCH_PATHS)} (or set {CONFIG_ENV})")


def load_config(path: str | None = None) -> Config:
    p = find_config(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigMalformed(f"{p}: {e}") from e
    except OSError as e:
        raise ConfigMissing(f"{p}: {e}") from e
    return parse_config(data, source=str(p))
