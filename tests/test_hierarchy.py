from __future__ import annotations

import pytest

from badhashes.hierarchy import EMPTY_HASH, Header, HeaderFormatError, Level, is_complete, normalize_hash


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0xABCDEF", "0x" + "0" * 58 + "abcdef"),
        ("abcdef", "0x" + "0" * 58 + "abcdef"),
        ("0x" + "1" * 66, "0x" + "1" * 64),
    ],
)
def test_normalize_hash(raw: str, expected: str) -> None:
    assert normalize_hash(raw) == expected


@pytest.mark.parametrize("raw", ["", "0x", "0xzz", "-1", "+ff", "0xab_cd", "0x 12"])
def test_normalize_hash_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_hash(raw)


def test_header_from_rpc_per_level_fields() -> None:
    hd = Header.from_rpc(
        {
            "hash": "0x01",
            "parentHash": ["0x02", "0x03", "0x04"],
            "number": ["0xa", "0xb", "0xc"],
            "location": "0x0201",
        }
    )
    assert hd.parent_hash(Level.TOP) == normalize_hash("0x02")
    assert hd.parent_hash(Level.ZONE) == normalize_hash("0x04")
    assert hd.number(Level.REGION) == 11
    assert hd.branch(Level.TOP) == 2
    assert hd.branch(Level.REGION) == 1


def test_header_from_rpc_scalar_fields_apply_to_every_level() -> None:
    hd = Header.from_rpc({"hash": "0x01", "parentHash": "0x02", "number": 5, "location": [0, 1]})
    assert hd.parent_hashes == (normalize_hash("0x02"),) * 3
    assert hd.numbers == (5, 5, 5)
    assert hd.location == (0, 1)


@pytest.mark.parametrize(
    "obj",
    [
        None,
        {"parentHash": "0x1", "number": 1},
        {"hash": "0x1", "number": 1},
        {"hash": "0x1", "parentHash": ["0x1"], "number": 1},
        {"hash": "0x1", "parentHash": "0x1", "number": "0xnope"},
    ],
)
def test_header_from_rpc_rejects_malformed(obj) -> None:
    with pytest.raises(HeaderFormatError):
        Header.from_rpc(obj)


def test_missing_coordinate_is_a_format_error() -> None:
    hd = Header.from_rpc({"hash": "0x1", "parentHash": "0x1", "number": 1, "location": "0x00"})
    with pytest.raises(HeaderFormatError):
        hd.branch(Level.REGION)


def test_is_complete() -> None:
    assert not is_complete([EMPTY_HASH, normalize_hash("0x1")])
    assert is_complete([normalize_hash("0x1")] * 4)
