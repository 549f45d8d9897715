from __future__ import annotations

from typing import Iterable, List

from ..models import LineageEdge


def assemble(edges: Iterable[LineageEdge]) -> List[LineageEdge]:
    """Drop exact duplicate edges, keeping first-seen order."""
    seen = set()
    out: List[LineageEdge] = []
    for e in edges:
        key = e.as_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(e)
    return out
