"""CSV → ES 적재 파이프라인 — Rich 로깅 + Progress Bar + alias 롤오버

흐름:
    [1/3] 새 generation 생성 (refresh=-1, replicas=0)
    [2/3] CSV 묶음 → 변환 → write action → 청크 분할 → 동시 벌크 요청
    [3/3] release 모드: 운영 설정 복원 + alias 교체 + 오래된 generation 정리
          staging 모드: alias 연결 없이 종료 (검증 후 수동 승격)

CSV 구조 오류만 실행을 중단시키고, 문서 단위 실패는 로그와 실패 기록으로 남긴 채 계속 진행.
"""

import asyncio
import time
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Iterator, Protocol

from elasticsearch import AsyncElasticsearch
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .bulk import BulkExecutor
from .client import build_es_client
from .config import Config
from .deadletter import DeadLetterLog
from .dispatcher import ChunkDispatcher
from .formatter import (
    BatchEnricher,
    BatchFormatter,
    PassthroughTransformer,
    Record,
    RecordTransformer,
    WriteAction,
)
from .generation import FinalizeResult, GenerationManager
from .log import escape_payload, get_logger, setup_logging
from .source import CsvRecordSource, RecordSourceError
from .stats import IndexingStats

console = Console()
logger = get_logger("pipeline")


class RecordSource(Protocol):
    def iter_groups(self) -> Iterator[list[Record]]: ...


class IndexingPipeline:
    """
    소스 → formatter → dispatcher → bulk executor 연결.

    사용 예:
        pipeline = IndexingPipeline(es, Config(alias="companies", id_key="siret"))
        generation = await pipeline.run(CsvRecordSource("companies.csv"), release=True)
    """

    def __init__(
        self,
        es: AsyncElasticsearch,
        config: Config,
        *,
        enricher: BatchEnricher | None = None,
        transformer: RecordTransformer | None = None,
        extras: dict[str, Any] | None = None,
        stats: IndexingStats | None = None,
        dead_letter: DeadLetterLog | None = None,
    ):
        self.config = config
        self.enricher = enricher
        self.transformer = transformer or PassthroughTransformer()
        self.extras = extras or {}
        self.stats = stats or IndexingStats()
        self.generations = GenerationManager(
            es,
            config.alias,
            config.pipeline_version,
            release_replicas=config.release_replicas,
            release_refresh_interval=config.release_refresh_interval,
        )
        self.executor = BulkExecutor(
            es,
            stats=self.stats,
            dead_letter=dead_letter,
            transport_max_retries=config.transport_max_retries,
            retry_backoff=config.retry_backoff,
            retry_max_backoff=config.retry_max_backoff,
        )
        self.generation: str | None = None
        self.finalized: FinalizeResult | None = None
        self.dispatcher: ChunkDispatcher | None = None

    async def run(self, source: RecordSource, release: bool = True) -> str:
        """적재 후 generation 이름 반환. release=False면 alias를 건드리지 않음."""
        generation = await self.generations.create(self.config.mappings, self.config.settings)
        self.generation = generation
        formatter = BatchFormatter(
            self.config.id_key, generation, enricher=self.enricher, extras=self.extras
        )

        async def write_chunk(chunk: list[WriteAction]):
            await self.executor.execute(generation, await formatter.enrich(chunk))

        # 창은 실행 전체에 걸쳐 하나: 소스 묶음 경계와 무관하게 chunk_size 단위로 전송
        dispatcher = ChunkDispatcher(
            write_chunk,
            chunk_size=self.config.chunk_size,
            max_concurrent=self.config.max_concurrent_requests,
        )
        self.dispatcher = dispatcher
        logger.info(
            f"적재 시작 → {generation} "
            f"(chunk={self.config.chunk_size:,}, "
            f"concurrency={self.config.max_concurrent_requests})"
        )

        groups = iter(source.iter_groups())
        next_row = 0
        try:
            while True:
                try:
                    records = await asyncio.to_thread(next, groups, None)
                except RecordSourceError as e:
                    logger.error(
                        f"[bold red]CSV 오류로 적재 중단[/bold red] ({generation}): "
                        f"{escape_payload(e)}"
                    )
                    raise
                if records is None:
                    break

                self.stats.record_rows(len(records))
                result = formatter.format_records(self.transformer.transform(records), next_row)
                next_row += len(records)
                self.stats.record_drops(result.dropped_malformed, result.dropped_header)
                await dispatcher.submit(result.actions)

            await dispatcher.drain()
        except Exception:
            await dispatcher.abort()
            raise

        if release:
            self.finalized = await self.generations.finalize(generation)
        else:
            logger.info(
                f"staging 모드: alias {self.config.alias} 유지, "
                f"{generation} 는 연결하지 않음"
            )
        logger.info(f"적재 완료: {generation} (alias {self.config.alias})")
        return generation


# ============================================================
# Rich Progress / 요약
# ============================================================
def _create_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        "[progress.description]{task.description}",
        BarColumn(bar_width=30),
        TextColumn("{task.completed:,} docs"),
        TextColumn("•"),
        TextColumn("[green]{task.fields[throughput]}[/]"),
        TextColumn("•"),
        TextColumn("[yellow]bulk={task.fields[last_bulk]}[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )


def _make_progress_callback(progress: Progress, task_id):
    """IndexingStats.on_update 콜백 — Rich Progress bar 연동"""

    def callback(stats: IndexingStats, count: int, bulk_ms: float):
        progress.update(
            task_id,
            advance=count,
            throughput=f"{stats.avg_rps:,.0f} docs/s",
            last_bulk=f"{bulk_ms:.0f}ms",
        )

    return callback


def _summary_table(title: str, rows: list[tuple[str, str]]) -> Table:
    table = Table(title=title, show_header=False, border_style="dim")
    table.add_column("항목", style="bold")
    table.add_column("값", justify="right", style="cyan")
    for label, value in rows:
        table.add_row(label, value)
    return table


# ============================================================
# 실행
# ============================================================
async def _run(
    config: Config,
    source: RecordSource,
    release: bool,
    es: AsyncElasticsearch | None,
    log_file: Path,
    **pipeline_kwargs,
) -> str:
    dead_letter = DeadLetterLog(
        config.failure_log_path or log_file.with_suffix(".failures.jsonl"),
        enabled=config.log_failures,
    )
    own_client = es is None
    if own_client:
        es = build_es_client(config)

    progress = _create_progress() if config.show_progress else None
    try:
        with progress or nullcontext():
            on_update = None
            if progress is not None:
                task_id = progress.add_task(
                    "Indexing", total=None, throughput="--", last_bulk="--"
                )
                on_update = _make_progress_callback(progress, task_id)
            stats = IndexingStats(on_update=on_update)
            pipeline = IndexingPipeline(
                es, config, stats=stats, dead_letter=dead_letter, **pipeline_kwargs
            )
            generation = await pipeline.run(source, release=release)
    finally:
        if own_client:
            await es.close()

    rows = [("generation", generation), *stats.summary_rows()]
    if dead_letter.count:
        rows.append(("실패 기록", f"{dead_letter.count:,}건 → {dead_letter.log_path}"))
    console.print(_summary_table("결과 요약", rows))
    for label, value in rows:
        logger.info(f"{label}: {value}")
    return generation


def run_indexing(
    config: Config,
    source: RecordSource | None = None,
    *,
    release: bool = True,
    es: AsyncElasticsearch | None = None,
    enricher: BatchEnricher | None = None,
    transformer: RecordTransformer | None = None,
    extras: dict[str, Any] | None = None,
) -> str:
    """
    동기 진입점. source를 생략하면 config.csv_path를 읽음.

    Returns: 적재한 generation 이름
    Raises:  RecordSourceError (CSV 구조 오류), ES 관리 API 에러 (생성/alias 교체 실패)
    """
    mode = "release" if release else "staging"
    log_file = config.log_dir / f"es_csv_{config.alias}_{time.strftime('%Y%m%d_%H%M%S')}.log"
    setup_logging(log_file=log_file)
    logger.info(f"config: {escape_payload(config, limit=2000)}")

    if source is None:
        if config.csv_path is None:
            raise ValueError("csv_path 또는 source 중 하나를 지정해야 합니다.")
        source = CsvRecordSource(
            config.csv_path,
            headers=config.headers,
            delimiter=config.delimiter,
            block_size=config.read_block_size,
            limit=config.max_rows,
        )

    console.print(
        Panel.fit(
            f"[bold]{mode} 모드[/] — {config.alias} 새 generation 적재",
            border_style="green" if release else "blue",
        )
    )
    return asyncio.run(
        _run(
            config, source, release, es, log_file,
            enricher=enricher, transformer=transformer, extras=extras,
        )
    )
