"""인덱싱 실패 문서 JSONL 기록 (수동 재처리용)"""

import asyncio
import json
import time
from pathlib import Path
from typing import Any


class DeadLetterLog:
    """
    비동기 안전 실패 기록기 (JSONL).

    한 줄 = 실패 1건:
        {"kind": "rejected", "index": ..., "doc_id": ..., "status": 409,
         "error": {...}, "document": {...}, "timestamp": ...}
        {"kind": "lost", "index": ..., "doc_ids": [...], "error": "...", ...}

    사용 예:
        dl = DeadLetterLog(Path("logs/failures.jsonl"))
        await dl.record("rejected", index="idx", doc_id="1", status=409)
    """

    def __init__(self, log_path: Path | None, enabled: bool = True):
        self.log_path = log_path
        self.enabled = enabled and log_path is not None
        self._lock = asyncio.Lock()
        self._count = 0
        if self.enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    async def record(self, kind: str, **data: Any):
        if not self.enabled:
            return

        entry = {
            "kind": kind,
            **data,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
        }
        line = json.dumps(entry, ensure_ascii=False, default=str) + "\n"
        async with self._lock:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line)
            self._count += 1

    @property
    def count(self) -> int:
        return self._count
