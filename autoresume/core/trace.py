from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

TRACE_LOG_PATH = Path(
    os.getenv(
        "AUTORESUME_TRACE_PATH",
        str(Path(__file__).parent.parent / "storage" / "resolution_trace.jsonl"),
    )
)


def append_resolution_trace(
    *,
    kind: str,
    query: str,
    outcome: str,
    data: dict[str, Any],
) -> None:
    """
    追加一条定位诊断记录（JSON lines）。
    kind: title | button | input | option | container
    outcome: matched | fallback | not_found | not_visible
    """
    payload = {
        "id": f"trace_{int(time.time() * 1000)}_{kind}",
        "timestamp": int(time.time() * 1000),
        "kind": kind,
        "query": query,
        "outcome": outcome,
        "data": data,
    }
    try:
        TRACE_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(TRACE_LOG_PATH, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except Exception:
        pass
