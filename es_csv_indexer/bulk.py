"""벌크 요청 실행 + 항목별 에러 분류 / 재시도

에러 처리 정책:
  - 요청 전체 실패 (연결 끊김, 타임아웃, 클러스터 에러)
      → 에러를 잘라서 로깅하고 계속 진행. 재시도는 transport_max_retries > 0 일 때만.
  - 항목 status 429 (리소스 부족)
      → 해당 문서 1건만 단건 index 요청으로 1회 재시도. 재시도 실패는 로깅만.
  - 그 밖의 항목 에러 (매핑 충돌 등)
      → status, 에러, 문서를 ERROR로 로깅. 문서 내용을 고쳐야 하므로 재시도 안 함.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Sequence

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from .deadletter import DeadLetterLog
from .formatter import WriteAction
from .log import escape_payload, get_logger, truncate
from .stats import IndexingStats

logger = get_logger("bulk")

RETRYABLE_STATUS = 429

# 응답 경량화: 항목별 status/error만 받음 (순서와 개수는 그대로)
BULK_FILTER_PATH = ["errors", "items.*.status", "items.*.error"]


@dataclass
class BulkOutcome:
    submitted: int = 0
    indexed: int = 0
    retried: int = 0
    retry_failed: int = 0
    rejected: int = 0
    lost: int = 0


def _body(response: Any) -> dict:
    return response.body if hasattr(response, "body") else response


def _doc_id(meta: dict[str, Any]) -> str | None:
    """{"index": {"_id": ...}} 형태의 metadata에서 _id 추출."""
    for params in meta.values():
        if isinstance(params, dict):
            return params.get("_id")
    return None


class BulkExecutor:
    """
    청크 하나 = 벌크 요청 하나.

    응답 항목 k는 평탄화된 요청 본문의 (2k, 2k+1) 위치
    (metadata, document)에 대응합니다.
    """

    def __init__(
        self,
        es: AsyncElasticsearch,
        *,
        stats: IndexingStats | None = None,
        dead_letter: DeadLetterLog | None = None,
        transport_max_retries: int = 0,
        retry_backoff: float = 1.0,
        retry_max_backoff: float = 60.0,
    ):
        self.es = es
        self.stats = stats
        self.dead_letter = dead_letter or DeadLetterLog(None, enabled=False)
        self.transport_max_retries = max(0, transport_max_retries)
        self.retry_backoff = retry_backoff
        self.retry_max_backoff = retry_max_backoff

    async def execute(self, index_name: str, actions: Sequence[WriteAction]) -> BulkOutcome:
        if not actions:
            return BulkOutcome()

        operations: list[dict[str, Any]] = [part for action in actions for part in action]
        outcome = BulkOutcome(submitted=len(actions))
        logger.info(f"{len(actions):,}건 벌크 인덱싱 → {index_name}")

        t0 = time.perf_counter()
        response = await self._send(index_name, operations)
        bulk_ms = (time.perf_counter() - t0) * 1000

        if response is None:
            outcome.lost = len(actions)
            if self.stats:
                self.stats.record_transport_failure(outcome.lost)
            return outcome

        body = _body(response)
        if body.get("errors"):
            await self._handle_item_errors(
                index_name, body.get("items") or [], operations, outcome
            )

        # 벌크에서 바로 성공한 문서 + 429 재시도로 성공한 문서
        bulk_indexed = len(actions) - outcome.retried - outcome.rejected
        outcome.indexed = bulk_indexed + outcome.retried - outcome.retry_failed
        if self.stats:
            self.stats.record_bulk(len(actions), bulk_indexed, bulk_ms)
        return outcome

    async def _send(self, index_name: str, operations: list[dict[str, Any]]):
        """벌크 요청. 최종 실패 시 None."""
        for attempt in range(self.transport_max_retries + 1):
            try:
                return await self.es.bulk(operations=operations, filter_path=BULK_FILTER_PATH)
            except (ApiError, TransportError) as e:
                if attempt >= self.transport_max_retries:
                    logger.error(
                        f"[bold red]벌크 요청 실패[/bold red] index={index_name} "
                        f"({len(operations) // 2:,}건): {escape_payload(e)}"
                    )
                    await self.dead_letter.record(
                        "lost",
                        index=index_name,
                        error=truncate(str(e)),
                        doc_ids=[_doc_id(meta) for meta in operations[0::2]],
                    )
                    return None
                backoff = min(self.retry_backoff * (2 ** attempt), self.retry_max_backoff)
                logger.warning(
                    f"[yellow]벌크 요청 재시도 대기[/yellow] "
                    f"({attempt + 1}/{self.transport_max_retries}) "
                    f"{backoff:.1f}초 후 재시도... error: {escape_payload(e)}"
                )
                await asyncio.sleep(backoff)
        return None

    async def _handle_item_errors(
        self,
        index_name: str,
        items: list[dict[str, Any]],
        operations: list[dict[str, Any]],
        outcome: BulkOutcome,
    ):
        if len(items) * 2 != len(operations):
            logger.warning(
                f"벌크 응답 항목 수 불일치: 요청 {len(operations) // 2:,}건, "
                f"응답 {len(items):,}건 (index={index_name})"
            )

        for k, item in enumerate(items[: len(operations) // 2]):
            for op_type, result in item.items():
                if not result.get("error"):
                    continue
                meta, document = operations[2 * k], operations[2 * k + 1]
                doc_id = _doc_id(meta)
                status = result.get("status", 0)

                if status == RETRYABLE_STATUS:
                    outcome.retried += 1
                    if not await self._retry_single(index_name, doc_id, document):
                        outcome.retry_failed += 1
                    continue

                outcome.rejected += 1
                if self.stats:
                    self.stats.record_rejected()
                logger.error(
                    f"벌크 {op_type} 에러 status={status} index={index_name} id={doc_id}: "
                    f"{escape_payload(result.get('error'))} 문서: {escape_payload(document)}"
                )
                await self.dead_letter.record(
                    "rejected",
                    index=index_name,
                    doc_id=doc_id,
                    status=status,
                    error=result.get("error"),
                    document=document,
                )

    async def _retry_single(self, index_name: str, doc_id: str | None, document: dict) -> bool:
        """429 문서 단건 재시도 (1회). 성공 여부 반환."""
        logger.warning(f"문서 {doc_id} 인덱싱 재시도 (index={index_name}, status=429)")
        try:
            await self.es.index(index=index_name, id=doc_id, document=document, refresh="false")
        except (ApiError, TransportError) as e:
            logger.error(
                f"문서 {doc_id} 재시도 실패 (index={index_name}): {escape_payload(e)}"
            )
            if self.stats:
                self.stats.record_retry(succeeded=False)
            await self.dead_letter.record(
                "retry_failed",
                index=index_name,
                doc_id=doc_id,
                error=truncate(str(e)),
                document=document,
            )
            return False
        if self.stats:
            self.stats.record_retry(succeeded=True)
        return True
