from __future__ import annotations

import json
import os
from typing import Any, List

from .walker import BadHashes


def render_text(result: BadHashes) -> str:
    """Nested literal dump, ready to paste into node source."""
    lines: List[str] = ["HeirarchyBadHashes{"]
    lines.append(f'\tPrimeContext: common.HexToHash("{result.prime}"),')
    lines.append("\tRegionContext: []common.Hash{")
    for h in result.regions:
        lines.append(f'\t\tcommon.HexToHash("{h}"),')
    lines.append("\t},")
    lines.append("\tZoneContext: [][]common.Hash{")
    for row in result.zones:
        lines.append("\t\t[]common.Hash{")
        for h in row:
            lines.append(f'\t\t\tcommon.HexToHash("{h}"),')
        lines.append("\t\t},")
    lines.append("\t},")
    lines.append("}")
    return "\n".join(lines) + "\n"


def to_json(result: BadHashes) -> dict[str, Any]:
    return result.to_dict()


def write_json_atomic(path: str, data: Any) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
        f.write("\n")
    os.replace(tmp, path)
