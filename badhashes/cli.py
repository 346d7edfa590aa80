#!/usr/bin/env python3
"""
Locate the replacement heads for every Region and Zone chain once a Prime
block is declared bad.

Usage: badhashes <prime-bad-hash>

Endpoints come from config/config.yaml or config.yaml in the working
directory (or the file named by BADHASHES_CONFIG). Progress goes to stderr,
the report to stdout. Set BADHASHES_OUT_JSON to also write a JSON report.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from .clients import connect_to_slice
from .config import ConfigError, load_config
from .hierarchy import BadHashError, normalize_hash
from .report import render_text, to_json, write_json_atomic
from .walker import HierarchyWalker


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Find the bad hashes implied by a bad Prime block.")
    parser.add_argument("bad_hash", help="Hex hash of the known-bad Prime block.")
    args = parser.parse_args(argv)

    try:
        bad_hash = normalize_hash(args.bad_hash)
    except ValueError as e:
        raise SystemExit(f"bad hash argument: {e}")

    try:
        config = load_config()
    except ConfigError as e:
        raise SystemExit(f"cannot load config: {e}")

    print(f"Connecting to {config.endpoint_count} nodes (R={config.branching}) from {config.source}...", file=sys.stderr)
    pool = connect_to_slice(config)

    walker = HierarchyWalker.from_pool(pool, config)
    try:
        result = walker.propagate(bad_hash)
    except BadHashError as e:
        raise SystemExit(f"propagation failed: {e}")

    sys.stdout.write(render_text(result))

    out_json = os.getenv("BADHASHES_OUT_JSON")
    if out_json:
        write_json_atomic(out_json, to_json(result))
        print(f"Wrote {out_json}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
