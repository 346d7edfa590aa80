from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Sequence


HASH_HEX_LEN = 64
EMPTY_HASH = "0x" + "0" * HASH_HEX_LEN

# Genesis of the observed deployment. Callers pass it explicitly to the resolver.
DEFAULT_GENESIS_HASH = "0x4c35b1216decc6aa2431fa2d2a1c68f15d70f83a309041ed1bfef5ad6592a3d4"

DEFAULT_BRANCHING = 3


class BadHashError(RuntimeError):
    pass


class HeaderFormatError(BadHashError):
    pass


class Level(IntEnum):
    TOP = 0
    REGION = 1
    ZONE = 2

    @property
    def label(self) -> str:
        # Node operators know the top tier as "Prime".
        return {Level.TOP: "Prime", Level.REGION: "Region", Level.ZONE: "Zone"}[self]


def normalize_hash(value: str) -> str:
    """Canonical 0x-prefixed lowercase 32-byte hash.

    Short values are left-padded, long values keep their rightmost 32 bytes.
    """
    s = str(value).strip().lower()
    if s.startswith("0x"):
        s = s[2:]
    if s == "":
        raise ValueError("empty hash")
    if not re.fullmatch(r"[0-9a-f]+", s):
        raise ValueError(f"invalid hex hash: {value!r}")
    if len(s) > HASH_HEX_LEN:
        s = s[-HASH_HEX_LEN:]
    return "0x" + s.rjust(HASH_HEX_LEN, "0")


def is_empty(h: str) -> bool:
    return h == EMPTY_HASH


def _parse_int(x: Any) -> int:
    if isinstance(x, bool):
        raise HeaderFormatError(f"unexpected boolean quantity: {x!r}")
    if isinstance(x, int):
        return x
    s = str(x)
    return int(s, 16) if s.lower().startswith("0x") else int(s)


def _per_level(raw: Any, name: str, conv) -> tuple:
    if raw is None:
        raise HeaderFormatError(f"header missing {name}")
    items = list(raw) if isinstance(raw, (list, tuple)) else [raw] * len(Level)
    if len(items) < len(Level):
        raise HeaderFormatError(f"header {name} has {len(items)} entries, need {len(Level)}")
    try:
        return tuple(conv(v) for v in items[: len(Level)])
    except (TypeError, ValueError) as e:
        raise HeaderFormatError(f"bad header {name}: {raw!r}") from e


def _parse_location(raw: Any) -> tuple[int, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (list, tuple)):
        return tuple(_parse_int(v) for v in raw)
    s = str(raw).lower()
    if s.startswith("0x"):
        s = s[2:]
    if len(s) % 2:
        s = "0" + s
    return tuple(bytes.fromhex(s))


@dataclass(frozen=True)
class Header:
    hash: str
    parent_hashes: tuple[str, ...]
    numbers: tuple[int, ...]
    location: tuple[int, ...]

    def parent_hash(self, level: Level) -> str:
        return self.parent_hashes[int(level)]

    def number(self, level: Level) -> int:
        return self.numbers[int(level)]

    def branch(self, level: Level) -> int:
        try:
            return self.location[int(level)]
        except IndexError:
            raise HeaderFormatError(
                f"header {self.hash} location {list(self.location)} has no {level.label} coordinate"
            ) from None

    @classmethod
    def from_rpc(cls, obj: Any) -> "Header":
        if not isinstance(obj, dict):
            raise HeaderFormatError(f"header is not an object: {obj!r}")
        if "hash" not in obj:
            raise HeaderFormatError("header missing hash")
        try:
            h = normalize_hash(obj["hash"])
            loc = _parse_location(obj.get("location"))
        except ValueError as e:
            raise HeaderFormatError(str(e)) from e
        return cls(
            hash=h,
            parent_hashes=_per_level(obj.get("parentHash"), "parentHash", normalize_hash),
            numbers=_per_level(obj.get("number"), "number", _parse_int),
            location=loc,
        )


def empty_vector(branching: int) -> list[str]:
    return [EMPTY_HASH] * (branching + 1)


def is_complete(termini: Sequence[str]) -> bool:
    return all(not is_empty(t) for t in termini)
