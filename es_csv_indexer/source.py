"""CSV 파일 스트리밍 리더 (pyarrow)"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence

import pyarrow as pa
import pyarrow.csv as pacsv

from .formatter import Record
from .log import escape_payload, get_logger

logger = get_logger("source")


class RecordSourceError(RuntimeError):
    """CSV 구조 오류. 잘린/깨진 소스로는 완전한 인덱스를 만들 수 없으므로 실행 중단."""


class CsvRecordSource:
    """
    대용량 CSV를 pyarrow 블록 단위로 읽어 레코드 묶음으로 반환.

    모든 값은 문자열로 읽습니다 (타입 추론 없음, 빈 칸은 "").
    headers를 지정하면 파일 첫 줄도 데이터로 읽히므로,
    id 컬럼 값이 컬럼 이름과 같은 행은 formatter에서 걸러집니다.

    사용 예:
        source = CsvRecordSource("data/companies.csv", block_size=1 << 20, limit=1000)
        for records in source.iter_groups():
            print(len(records), records[0])
    """

    def __init__(
        self,
        csv_path: Path | str,
        headers: Sequence[str] | None = None,
        delimiter: str = ",",
        block_size: int = 131_072,
        limit: int = 0,
    ):
        self.csv_path = Path(csv_path)
        self.headers = list(headers) if headers else None
        self.delimiter = delimiter
        self.block_size = block_size
        self.limit = limit
        self.rows_read = 0
        self.rows_skipped = 0

    def _skip_invalid_row(self, row) -> str:
        """컬럼 수가 헤더와 다른 행은 ERROR 로그만 남기고 건너뜀."""
        self.rows_skipped += 1
        logger.error(
            f"컬럼 수 불일치로 행 건너뜀 (row={row.number}, "
            f"expected={row.expected_columns}, actual={row.actual_columns}): "
            f"{escape_payload(row.text)}"
        )
        return "skip"

    def _parse_options(self, invalid_row_handler=None) -> pacsv.ParseOptions:
        return pacsv.ParseOptions(
            delimiter=self.delimiter,
            ignore_empty_lines=True,
            invalid_row_handler=invalid_row_handler or self._skip_invalid_row,
        )

    def _column_names(self) -> list[str]:
        """헤더 미지정 시 파일 첫 줄에서 컬럼 이름을 읽음."""
        if self.headers:
            return self.headers
        with open(self.csv_path, "rb") as f:
            reader = pacsv.open_csv(
                f,
                read_options=pacsv.ReadOptions(block_size=self.block_size),
                parse_options=self._parse_options(lambda row: "skip"),  # 헤더만 필요
            )
            return list(reader.schema.names)

    def iter_groups(self) -> Iterator[list[Record]]:
        """
        레코드 묶음 제너레이터 (pyarrow record batch 1개 = 묶음 1개).

        Raises:
            RecordSourceError: 파일 없음, 인코딩 오류 등 파싱 실패
            (컬럼 수가 맞지 않는 행은 오류가 아니라 건너뜀)
        """
        if not self.csv_path.is_file():
            raise RecordSourceError(f"CSV 파일이 없습니다: {self.csv_path}")
        if self.csv_path.stat().st_size == 0:
            logger.warning(f"빈 CSV 파일: {self.csv_path}")
            return

        try:
            names = self._column_names()
            read_options = pacsv.ReadOptions(
                block_size=self.block_size,
                column_names=self.headers,
            )
            convert_options = pacsv.ConvertOptions(
                column_types={name: pa.string() for name in names},
                strings_can_be_null=False,
            )
            logger.info(
                f"CSV 읽기: [cyan]{self.csv_path.name}[/cyan] "
                f"(컬럼 {len(names)}개, limit={self.limit or '전체'})"
            )

            with open(self.csv_path, "rb") as f:
                reader = pacsv.open_csv(
                    f,
                    read_options=read_options,
                    parse_options=self._parse_options(),
                    convert_options=convert_options,
                )
                for batch in reader:
                    records = [
                        {k: ("" if v is None else v) for k, v in row.items()}
                        for row in batch.to_pylist()
                    ]
                    if self.limit > 0:
                        records = records[: self.limit - self.rows_read]
                    self.rows_read += len(records)
                    if records:
                        yield records
                    if self.limit > 0 and self.rows_read >= self.limit:
                        break
        except (pa.ArrowException, OSError) as e:
            raise RecordSourceError(
                f"CSV 파싱 실패 ({self.csv_path.name}, {self.rows_read:,}행 이후): {e}"
            ) from e

        if self.rows_skipped:
            logger.warning(f"컬럼 수 불일치로 건너뛴 행: {self.rows_skipped:,}")
        logger.info(f"CSV 파싱 완료: {self.rows_read:,}행")
