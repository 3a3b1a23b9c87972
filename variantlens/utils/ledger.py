# variantlens/utils/ledger.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
import asyncio, time

@dataclass
class Row:
    ts: float
    dependency: str
    outcome: str        # "data" | "absent" | "unavailable"
    reason: Optional[str]
    attempts: int
    url: str

class OutcomeLedger:
    """In-memory record of classified gateway outcomes (last N rows)."""

    def __init__(self, max_rows: int = 1000):
        self._rows: List[Row] = []
        self._max_rows = max_rows
        self._lock = asyncio.Lock()

    async def add(self, dependency: str, outcome: str, reason: Optional[str], attempts: int, url: str):
        async with self._lock:
            self._rows.append(Row(time.time(), dependency, outcome, reason, attempts, url))
            if len(self._rows) > self._max_rows:
                del self._rows[: len(self._rows) - self._max_rows]

    async def snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            rows = [asdict(r) for r in self._rows]
        rollup: Dict[str, Dict[str, Any]] = {}
        for r in rows:
            d = r["dependency"]
            roll = rollup.setdefault(d, {"calls": 0, "data": 0, "absent": 0, "unavailable": 0, "last": None})
            roll["calls"] += 1
            roll[r["outcome"]] += 1
            roll["last"] = r
        return {"rows": rows, "rollup": rollup}
