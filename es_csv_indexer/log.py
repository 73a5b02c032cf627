"""
패키지 로깅 설정 (Rich console + plain-text file)

  - Console: RichHandler (색상, markup 지원)
  - File:    FileHandler (Rich markup 제거된 plain text)

사용법:
    from .log import setup_logging, get_logger

    logger = get_logger("bulk")          # es_csv_indexer.bulk
    setup_logging(log_file=Path("logs/run.log"))
    logger.info("[bold green]완료![/bold green]")

문서 본문이나 ES 에러처럼 외부에서 들어온 문자열은 markup으로 해석되지 않도록
escape_payload()로 감싸서 로깅합니다.
"""

import json
import logging
from pathlib import Path
from typing import Any

from rich.errors import MarkupError
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

PKG = "es_csv_indexer"

# 로그 한 줄에 실을 수 있는 에러/문서 본문 최대 길이
MAX_DETAIL_CHARS = 500


class _PlainFormatter(logging.Formatter):
    """FileHandler용: Rich markup 태그를 제거한 plain text로 기록."""

    def format(self, record: logging.LogRecord) -> str:
        original_msg = record.msg
        try:
            record.msg = Text.from_markup(str(record.msg)).plain
        except MarkupError:
            pass
        result = super().format(record)
        record.msg = original_msg
        return result


def setup_logging(
    log_file: Path | None = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    패키지 루트 로거에 핸들러를 설정.

    - RichHandler: 첫 호출 시 1회만 추가
    - FileHandler: log_file이 주어질 때마다 추가 (실행별 별도 파일)
    """
    logger = logging.getLogger(PKG)
    logger.setLevel(level)

    has_rich = any(isinstance(h, RichHandler) for h in logger.handlers)
    if not has_rich:
        console = RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=True,
            log_time_format="[%H:%M:%S]",
        )
        console.setLevel(level)
        logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(_PlainFormatter("%(asctime)s  %(levelname)s  %(name)s  %(message)s"))
        fh.setLevel(level)
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """get_logger("bulk") → logging.getLogger("es_csv_indexer.bulk")"""
    return logging.getLogger(f"{PKG}.{name}")


def truncate(text: str, limit: int = MAX_DETAIL_CHARS) -> str:
    """긴 문자열을 limit 글자로 자르고 잘린 길이를 표시."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text) - limit} chars truncated)"


def escape_payload(payload: Any, limit: int = MAX_DETAIL_CHARS) -> str:
    """dict/list는 JSON으로 직렬화 → 자르기 → Rich markup escape."""
    if isinstance(payload, (dict, list)):
        text = json.dumps(payload, ensure_ascii=False, default=str)
    else:
        text = str(payload)
    return escape(truncate(text, limit))
