#!/usr/bin/env python3
# index_csv.py
"""
CSV → Elasticsearch 적재 (CLI 엔트리포인트)

실행:
  # release: 새 generation 적재 후 alias 교체
  python index_csv.py data/companies.csv --alias companies --id_key siret

  # staging: alias는 그대로 두고 새 generation만 적재
  python index_csv.py data/companies.csv --alias companies --id_key siret --mode staging

  # 헤더 지정 + 매핑/설정 JSON
  python index_csv.py data/companies.csv --alias companies --id_key siret \\
      --headers siret name city --schema schema/companies.json

  # 청크/동시성 등은 환경 변수로도 설정 가능
  INDEX_CHUNK_SIZE=5000 INDEX_MAX_CONCURRENT_REQUESTS=4 MAX_ROWS=1000 \\
      python index_csv.py data/companies.csv --alias companies --id_key siret
"""

import argparse
import json
import sys
from pathlib import Path

from es_csv_indexer import Config, RecordSourceError, run_indexing


def main():
    parser = argparse.ArgumentParser(
        description="CSV → Elasticsearch (bulk + alias rollover)"
    )
    parser.add_argument("csv", type=Path, help="CSV 파일 경로")
    parser.add_argument(
        "--mode", choices=["release", "staging"], default="release",
        help="release=적재 후 alias 교체, staging=alias 유지",
    )

    # ── 인덱스 ──
    index = parser.add_argument_group("인덱스")
    index.add_argument("--alias", required=True, help="운영 alias 이름 (소문자)")
    index.add_argument("--id_key", required=True, help="문서 _id로 사용할 컬럼")
    index.add_argument("--pipeline_version", default=None, help="generation 이름에 들어갈 버전 (env: PIPELINE_VERSION)")
    index.add_argument(
        "--schema", type=Path, default=None,
        help='{"mappings": ..., "settings": ...} JSON 파일 경로',
    )

    # ── CSV ──
    csv = parser.add_argument_group("CSV")
    csv.add_argument("--headers", nargs="+", default=None, help="컬럼 이름 (미지정 시 첫 줄 사용)")
    csv.add_argument("--delimiter", default=",")
    csv.add_argument("--max_rows", type=int, default=None, help="최대 행 수 (env: MAX_ROWS, 0=전체)")

    # ── 벌크 ──
    bulk = parser.add_argument_group("벌크")
    bulk.add_argument("--chunk_size", type=int, default=None, help="env: INDEX_CHUNK_SIZE (default: 10000)")
    bulk.add_argument(
        "--max_concurrent_requests", type=int, default=None,
        help="env: INDEX_MAX_CONCURRENT_REQUESTS (default: 2)",
    )
    bulk.add_argument(
        "--transport_max_retries", type=int, default=None,
        help="벌크 요청 전체 실패 시 재시도 횟수 (env: INDEX_TRANSPORT_MAX_RETRIES, default: 0)",
    )
    bulk.add_argument("--failure_log", type=Path, default=None, help="실패 문서 JSONL 경로")
    bulk.add_argument("--no_progress", action="store_true")

    # ── ES 연결 ──
    cluster = parser.add_argument_group("ES 연결")
    cluster.add_argument("--es_url", default=None, help="env: ES_URL")
    cluster.add_argument("--es_nodes", nargs="+", default=None, help="클러스터 노드 URL 목록")
    cluster.add_argument("--es_fingerprint", default=None, help="TLS 인증서 SHA-256 fingerprint")
    cluster.add_argument("--es_username", default=None)
    cluster.add_argument("--es_password", default=None)
    cluster.add_argument("--es_api_key", default=None)

    args = parser.parse_args()

    mappings = settings = None
    if args.schema:
        schema = json.loads(args.schema.read_text(encoding="utf-8"))
        mappings = schema.get("mappings")
        settings = schema.get("settings")

    config = Config.from_env(
        csv_path=args.csv,
        alias=args.alias,
        id_key=args.id_key,
        pipeline_version=args.pipeline_version,
        mappings=mappings,
        settings=settings,
        headers=args.headers,
        delimiter=args.delimiter,
        max_rows=args.max_rows,
        chunk_size=args.chunk_size,
        max_concurrent_requests=args.max_concurrent_requests,
        transport_max_retries=args.transport_max_retries,
        failure_log_path=args.failure_log,
        show_progress=not args.no_progress,
        es_url=args.es_url,
        es_nodes=args.es_nodes,
        es_fingerprint=args.es_fingerprint,
        es_username=args.es_username,
        es_password=args.es_password,
        es_api_key=args.es_api_key,
    )

    try:
        run_indexing(config, release=args.mode == "release")
    except RecordSourceError as e:
        print(f"CSV 오류로 중단: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
