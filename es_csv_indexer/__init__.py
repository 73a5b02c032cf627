"""
es_csv_indexer — 대용량 CSV → Elasticsearch 벌크 적재 + alias 롤오버

적재 후 alias 교체 (release):
    from es_csv_indexer import Config, run_indexing
    run_indexing(Config.from_env(csv_path=Path("companies.csv"), alias="companies", id_key="siret"))

alias를 건드리지 않고 적재만 (staging):
    run_indexing(config, release=False)

개별 컴포넌트 (async):
    from es_csv_indexer import GenerationManager, BulkExecutor, ChunkDispatcher
    manager = GenerationManager(es, "companies", "v3")
    name = await manager.create()
    ...
    await manager.finalize(name)
"""

from .bulk import BulkExecutor, BulkOutcome
from .client import build_es_client
from .config import INDEXING_SETTINGS, Config
from .deadletter import DeadLetterLog
from .dispatcher import ChunkDispatcher, chunk_actions
from .formatter import (
    BatchEnricher,
    BatchFormatter,
    PassthroughEnricher,
    PassthroughTransformer,
    RecordTransformer,
)
from .generation import FinalizeResult, GenerationManager
from .log import get_logger, setup_logging
from .pipeline import IndexingPipeline, run_indexing
from .source import CsvRecordSource, RecordSourceError
from .stats import IndexingStats

__all__ = [
    "Config", "INDEXING_SETTINGS", "build_es_client",
    "BulkExecutor", "BulkOutcome",
    "ChunkDispatcher", "chunk_actions",
    "BatchFormatter", "BatchEnricher", "RecordTransformer",
    "PassthroughEnricher", "PassthroughTransformer",
    "GenerationManager", "FinalizeResult",
    "IndexingPipeline", "run_indexing",
    "CsvRecordSource", "RecordSourceError",
    "IndexingStats", "DeadLetterLog",
    "setup_logging", "get_logger",
]
