"""CSV 레코드 → ES 벌크 write action 변환

write action = (metadata, document) 튜플:
    ({"index": {"_id": "123", "_index": "companies-v1-1700000000000"}},
     {"id": "123", "name": "..."})

벌크 요청 본문은 action들을 평탄화한 [meta, doc, meta, doc, ...] 형태이므로
같은 레코드의 meta/doc는 항상 붙어 있어야 합니다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .log import escape_payload, get_logger

logger = get_logger("formatter")

Record = dict[str, str]
WriteAction = tuple[dict[str, Any], dict[str, Any]]


class BatchEnricher(Protocol):
    """
    청크 단위 후처리 전략.

    청크 전체를 받아 대체 청크를 반환하므로 1:N 변환(파생 문서 추가 등)이나
    청크 안의 다른 문서를 참고하는 변환이 가능합니다.
    """

    async def enrich(
        self, actions: list[WriteAction], extras: dict[str, Any]
    ) -> list[WriteAction]: ...


class RecordTransformer(Protocol):
    """소스에서 읽은 레코드 묶음을 포맷 전에 변환하는 전략."""

    def transform(self, records: list[Record]) -> list[Record]: ...


class PassthroughEnricher:
    async def enrich(
        self, actions: list[WriteAction], extras: dict[str, Any]
    ) -> list[WriteAction]:
        return actions


class PassthroughTransformer:
    def transform(self, records: list[Record]) -> list[Record]:
        return records


@dataclass
class FormatResult:
    actions: list[WriteAction]
    dropped_malformed: int = 0
    dropped_header: int = 0


class BatchFormatter:
    """
    레코드 → write action.

    버리는 행 (순서대로 검사):
      1. id 컬럼이 없거나 빈 문자열 → ERROR 로그 후 버림
      2. id 값 == id 컬럼 이름 (헤더 행이 데이터로 읽힌 경우) → 조용히 버림
    """

    def __init__(
        self,
        id_key: str,
        index_name: str,
        enricher: BatchEnricher | None = None,
        extras: dict[str, Any] | None = None,
    ):
        self.id_key = id_key
        self.index_name = index_name
        self.enricher = enricher or PassthroughEnricher()
        self.extras = extras or {}

    def format_record(self, record: Record, row_index: int) -> WriteAction | None:
        doc_id = record.get(self.id_key)
        if not doc_id:
            logger.error(
                f"id 컬럼 '{self.id_key}' 누락 → {row_index}행 건너뜀: "
                f"{escape_payload(record)}"
            )
            return None
        if doc_id == self.id_key:
            return None
        return (
            {"index": {"_id": doc_id, "_index": self.index_name}},
            record,
        )

    def format_records(self, records: list[Record], start_row: int = 0) -> FormatResult:
        """레코드 묶음 변환. start_row는 소스 전체 기준 첫 행 번호 (로그용)."""
        result = FormatResult(actions=[])
        for offset, record in enumerate(records):
            action = self.format_record(record, start_row + offset)
            if action is not None:
                result.actions.append(action)
            elif record.get(self.id_key):
                result.dropped_header += 1
            else:
                result.dropped_malformed += 1
        return result

    async def enrich(self, actions: list[WriteAction]) -> list[WriteAction]:
        """청크 하나에 enricher 적용 (벌크 요청 직전, 청크마다 1회)."""
        return await self.enricher.enrich(actions, self.extras)
