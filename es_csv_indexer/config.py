"""CSV → Elasticsearch 인덱서 설정"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

# ── 환경 변수 이름 ──
ENV_CHUNK_SIZE = "INDEX_CHUNK_SIZE"
ENV_MAX_CONCURRENT_REQUESTS = "INDEX_MAX_CONCURRENT_REQUESTS"
ENV_NB_REPLICAS = "INDEX_NB_REPLICAS"
ENV_REFRESH_INTERVAL = "INDEX_REFRESH_INTERVAL"
ENV_TRANSPORT_MAX_RETRIES = "INDEX_TRANSPORT_MAX_RETRIES"
ENV_MAX_ROWS = "MAX_ROWS"
ENV_PIPELINE_VERSION = "PIPELINE_VERSION"

# ── 적재 중 인덱스 설정 (쓰기 증폭 최소화) ──
INDEXING_SETTINGS = {
    "refresh_interval": "-1",
    "number_of_replicas": 0,
    "index.translog.durability": "async",
}


def _env_int(name: str, default: int) -> int:
    """정수 환경 변수. 없거나 숫자가 아니면 default."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: str | None) -> str | None:
    raw = os.environ.get(name)
    return raw if raw else default


@dataclass
class Config:
    # 데이터 소스
    csv_path: Path | None = None
    headers: list[str] | None = None   # None → CSV 첫 줄을 헤더로 사용
    delimiter: str = ","
    read_block_size: int = 131_072     # pyarrow 블록 크기 (bytes) = 한 번에 넘겨받는 레코드 묶음
    max_rows: int = 0                  # 0 = 전체

    # 인덱스 / alias
    alias: str = "records"
    id_key: str = "id"                 # 문서 _id로 쓰는 컬럼
    pipeline_version: str = "v1"       # generation 이름에 포함
    mappings: dict | None = None
    settings: dict | None = None       # 생성 시 INDEXING_SETTINGS 위에 덮어씀

    # 벌크 처리
    chunk_size: int = 10_000
    max_concurrent_requests: int = 2

    # release 후 운영 설정
    release_replicas: int = 3
    release_refresh_interval: str = "1s"

    # 벌크 요청 전체 실패 시 재시도 (0 = 로깅 후 계속 진행)
    transport_max_retries: int = 0
    retry_backoff: float = 1.0
    retry_max_backoff: float = 60.0

    # Elasticsearch 연결
    es_url: str = "http://localhost:9200"
    es_nodes: list[str] | None = None       # 클러스터 노드 목록 (설정 시 es_url 무시)
    es_fingerprint: str | None = None       # TLS 인증서 SHA-256 fingerprint (클러스터 시 필수)
    es_username: str | None = None
    es_password: str | None = field(default=None, repr=False)
    es_api_key: str | None = field(default=None, repr=False)
    request_timeout: float = 120.0

    # 로그 / 실패 기록
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_failures: bool = True
    failure_log_path: Path | None = None    # None → log_dir/<run>.failures.jsonl
    show_progress: bool = True

    def __post_init__(self):
        self.chunk_size = max(1, self.chunk_size)
        self.max_concurrent_requests = max(1, self.max_concurrent_requests)
        self.transport_max_retries = max(0, self.transport_max_retries)

    @classmethod
    def from_env(cls, **overrides) -> "Config":
        """
        환경 변수 → Config. 명시적으로 넘긴 overrides가 우선.

        예:
            INDEX_CHUNK_SIZE=5000 python index_csv.py ...
            Config.from_env(alias="companies", id_key="siret")
        """
        env_values = {
            "chunk_size": _env_int(ENV_CHUNK_SIZE, cls.chunk_size),
            "max_concurrent_requests": _env_int(
                ENV_MAX_CONCURRENT_REQUESTS, cls.max_concurrent_requests
            ),
            "release_replicas": _env_int(ENV_NB_REPLICAS, cls.release_replicas),
            "release_refresh_interval": _env_str(
                ENV_REFRESH_INTERVAL, cls.release_refresh_interval
            ),
            "transport_max_retries": _env_int(
                ENV_TRANSPORT_MAX_RETRIES, cls.transport_max_retries
            ),
            "max_rows": _env_int(ENV_MAX_ROWS, cls.max_rows),
            "pipeline_version": _env_str(ENV_PIPELINE_VERSION, cls.pipeline_version),
            "es_url": _env_str("ES_URL", cls.es_url),
            "es_username": _env_str("ES_USERNAME", None),
            "es_password": _env_str("ES_PASSWORD", None),
            "es_api_key": _env_str("ES_API_KEY", None),
        }
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"알 수 없는 설정 항목: {', '.join(sorted(unknown))}")
        env_values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**env_values)
