"""인덱싱 진행 통계"""

import time
from typing import Callable

from .log import get_logger

logger = get_logger("stats")


class IndexingStats:
    """
    한 번의 실행 동안 누적되는 카운터.

    단일 이벤트 루프에서만 갱신되므로 별도 lock 없이 사용.

    카운터:
        rows_read          소스에서 읽은 행
        dropped_malformed  id 컬럼 누락/빈 값으로 버린 행
        dropped_header     헤더 행이 데이터로 다시 나타나 버린 행
        submitted          벌크 요청에 실린 문서
        indexed            벌크 응답에서 성공한 문서
        retried            429로 단건 재시도한 문서
        retry_failed       단건 재시도도 실패한 문서
        rejected           재시도하지 않는 에러(매핑 충돌 등)로 실패한 문서
        transport_failures 벌크 요청 자체가 실패한 횟수
        lost               요청 실패로 유실된 문서

    on_update: submitted/indexed 갱신 시 호출 (Rich Progress 연동)
    """

    def __init__(
        self,
        *,
        on_update: Callable[["IndexingStats", int, float], None] | None = None,
        log_interval: int = 100_000,
    ):
        self.rows_read = 0
        self.dropped_malformed = 0
        self.dropped_header = 0
        self.submitted = 0
        self.indexed = 0
        self.retried = 0
        self.retry_failed = 0
        self.rejected = 0
        self.transport_failures = 0
        self.lost = 0
        self.chunks = 0

        self._bulk_ms = 0.0
        self._start = time.perf_counter()
        self._last_logged = 0
        self._on_update = on_update
        self._log_interval = log_interval

    def record_rows(self, count: int):
        self.rows_read += count

    def record_drops(self, malformed: int, header: int):
        self.dropped_malformed += malformed
        self.dropped_header += header

    def record_bulk(self, submitted: int, indexed: int, bulk_ms: float):
        """벌크 요청 1건 완료 기록."""
        self.chunks += 1
        self.submitted += submitted
        self.indexed += indexed
        self._bulk_ms += bulk_ms

        if self._on_update:
            self._on_update(self, submitted, bulk_ms)
        self._maybe_log()

    def record_transport_failure(self, lost: int):
        self.chunks += 1
        self.transport_failures += 1
        self.submitted += lost
        self.lost += lost
        if self._on_update:
            self._on_update(self, lost, 0.0)

    def record_retry(self, succeeded: bool):
        self.retried += 1
        if succeeded:
            self.indexed += 1
        else:
            self.retry_failed += 1

    def record_rejected(self, count: int = 1):
        self.rejected += count

    @property
    def failed(self) -> int:
        return self.rejected + self.retry_failed + self.lost

    @property
    def bulk_sec(self) -> float:
        return self._bulk_ms / 1000

    @property
    def wall_sec(self) -> float:
        return time.perf_counter() - self._start

    @property
    def avg_rps(self) -> float:
        w = self.wall_sec
        return self.submitted / w if w > 0 else 0.0

    def _maybe_log(self):
        if self.submitted - self._last_logged < self._log_interval:
            return
        self._last_logged = self.submitted
        logger.info(
            f"{self.submitted:>10,} docs 전송  "
            f"indexed=[green]{self.indexed:,}[/green]  "
            f"failed=[red]{self.failed:,}[/red]  "
            f"avg=[cyan]{self.avg_rps:,.0f} docs/s[/cyan]"
        )

    def summary_rows(self) -> list[tuple[str, str]]:
        """요약 테이블 행."""
        wall = self.wall_sec
        rows = [
            ("읽은 행", f"{self.rows_read:,}"),
            ("전송 문서", f"{self.submitted:,} ({self.chunks:,} 벌크 요청)"),
            ("인덱싱 성공", f"{self.indexed:,}"),
            ("Wall time", f"{wall:.1f}초"),
            ("처리량", f"{self.submitted / wall if wall > 0 else 0:,.0f} docs/sec"),
            ("bulk 합계", f"{self.bulk_sec:.1f}초 (코루틴 time)"),
        ]
        if self.dropped_malformed or self.dropped_header:
            rows.append((
                "버린 행",
                f"{self.dropped_malformed:,} (id 누락) / {self.dropped_header:,} (헤더)",
            ))
        if self.retried:
            rows.append(("429 재시도", f"{self.retried:,}건 (실패 {self.retry_failed:,})"))
        if self.rejected:
            rows.append(("거부 문서", f"[red]{self.rejected:,}건[/]"))
        if self.transport_failures:
            rows.append((
                "요청 실패",
                f"[red]{self.transport_failures:,}회 ({self.lost:,}건 유실)[/]",
            ))
        return rows
