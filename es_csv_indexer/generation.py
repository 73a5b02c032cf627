"""인덱스 generation 생성 + alias 롤오버

generation 이름: {alias}-{pipeline_version}-{생성 시각 epoch ms}
    예) companies-v3-1718000000000

흐름:
    create()   → 적재용 설정(refresh 비활성, replica 0)으로 새 인덱스 생성. alias 미연결.
    (벌크 적재)
    finalize() → 운영 설정 복원 → alias 원자적 교체 → 오래된 generation 정리
                 (롤백용으로 직전 generation 1개는 남김)
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from elasticsearch import AsyncElasticsearch

from .config import INDEXING_SETTINGS
from .log import get_logger

logger = get_logger("generation")

SEPARATOR = "-"

# ES 인덱스 이름 규칙: 소문자, 특수문자 제한, -/_/+ 로 시작 불가
_VALID_ALIAS = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


def _normalize_version(version: str) -> str:
    """버전 문자열에 SEPARATOR가 섞이면 이름 파싱이 모호해지므로 '_'로 치환."""
    normalized = str(version).strip().lower().replace(SEPARATOR, "_")
    if not normalized or not re.match(r"^[a-z0-9._]+$", normalized):
        raise ValueError(f"generation 이름에 쓸 수 없는 버전: {version!r}")
    return normalized


def _body(response: Any):
    return response.body if hasattr(response, "body") else response


@dataclass
class FinalizeResult:
    generation: str
    unbound: list[str] = field(default_factory=list)   # alias에서 떼어낸 generation
    kept: list[str] = field(default_factory=list)      # 롤백용으로 남긴 generation
    deleted: list[str] = field(default_factory=list)


class GenerationManager:
    """
    alias 하나에 대한 generation 생명주기 관리.

    Args:
        es:                       AsyncElasticsearch 클라이언트
        alias:                    운영 alias (소문자)
        pipeline_version:         generation 이름에 들어갈 파이프라인 버전
        release_replicas:         finalize 시 복원할 replica 수
        release_refresh_interval: finalize 시 복원할 refresh interval
        clock:                    epoch 초를 반환하는 함수 (기본 time.time)
    """

    def __init__(
        self,
        es: AsyncElasticsearch,
        alias: str,
        pipeline_version: str,
        *,
        release_replicas: int = 3,
        release_refresh_interval: str = "1s",
        clock: Callable[[], float] = time.time,
    ):
        if not alias or not _VALID_ALIAS.match(alias):
            raise ValueError(
                f"유효하지 않은 alias: {alias!r} (소문자/숫자/._- 만 허용)"
            )
        self.es = es
        self.alias = alias
        self.pipeline_version = _normalize_version(pipeline_version)
        self.release_replicas = release_replicas
        self.release_refresh_interval = release_refresh_interval
        self._clock = clock
        self._last_millis = 0

    # ================================================================
    # 이름
    # ================================================================

    def generation_name(self) -> str:
        """같은 프로세스에서 연달아 호출해도 겹치지 않는 generation 이름."""
        millis = int(self._clock() * 1000)
        if millis <= self._last_millis:
            millis = self._last_millis + 1
        self._last_millis = millis
        return f"{self.alias}{SEPARATOR}{self.pipeline_version}{SEPARATOR}{millis}"

    def parse_timestamp(self, index_name: str) -> int | None:
        """이 alias의 generation 이름이면 생성 시각(ms), 아니면 None."""
        prefix = f"{self.alias}{SEPARATOR}"
        if not index_name.startswith(prefix):
            return None
        parts = index_name[len(prefix):].split(SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1].isdigit():
            return None
        return int(parts[1])

    # ================================================================
    # 생성
    # ================================================================

    async def create(
        self,
        mappings: dict | None = None,
        settings: dict | None = None,
    ) -> str:
        """
        새 generation 생성. alias는 아직 연결하지 않음.

        적재용 설정(INDEXING_SETTINGS) 위에 settings를 덮어씀.
        """
        name = self.generation_name()
        kwargs: dict[str, Any] = {
            "index": name,
            "settings": {**INDEXING_SETTINGS, **(settings or {})},
        }
        if mappings:
            kwargs["mappings"] = mappings

        await self.es.indices.create(**kwargs)
        logger.info(f"새 인덱스 생성: [cyan]{name}[/cyan] (refresh=-1, replicas=0)")
        return name

    # ================================================================
    # 롤오버
    # ================================================================

    async def bound_generations(self) -> list[str]:
        """현재 alias가 가리키는 인덱스 목록."""
        response = await self.es.cat.aliases(name=self.alias, format="json")
        return [info["index"] for info in _body(response)]

    async def list_generations(self) -> list[str]:
        """이 alias의 generation 이름 규칙에 맞는 인덱스 (생성 시각 오름차순)."""
        response = await self.es.cat.indices(
            index=f"{self.alias}{SEPARATOR}*", format="json", h="index"
        )
        stamped = []
        for info in _body(response):
            ts = self.parse_timestamp(info["index"])
            if ts is not None:
                stamped.append((ts, info["index"]))
        return [name for _, name in sorted(stamped)]

    async def finalize(self, generation: str) -> FinalizeResult:
        """
        release 실행 마무리.

        1. alias가 가리키는 generation 조회
        2. 새 generation에 운영 설정 적용 (replicas, refresh_interval)
        3. remove + add 를 한 번의 update_aliases 로 원자적 교체
        4. 새 generation을 제외한 나머지 중 가장 최근 1개만 남기고 삭제
        """
        result = FinalizeResult(generation=generation)
        bound = await self.bound_generations()

        logger.info(f"alias {self.alias} 운영 설정 적용 → {generation}")
        await self.es.indices.put_settings(
            index=generation,
            settings={
                "index": {
                    "number_of_replicas": self.release_replicas,
                    "refresh_interval": self.release_refresh_interval,
                    "translog.durability": "request",
                }
            },
        )

        result.unbound = [name for name in bound if name != generation]
        actions: list[dict] = []
        if result.unbound:
            actions.append({"remove": {"indices": result.unbound, "alias": self.alias}})
        actions.append({"add": {"index": generation, "alias": self.alias}})
        await self.es.indices.update_aliases(actions=actions)
        logger.info(f"alias [bold]{self.alias}[/bold] → [cyan]{generation}[/cyan]")
        if result.unbound:
            logger.info(f"이전 인덱스에서 alias 해제: {', '.join(result.unbound)}")

        older = [name for name in await self.list_generations() if name != generation]
        result.kept = older[-1:]
        result.deleted = older[:-1]
        if result.deleted:
            logger.info(
                f"오래된 인덱스 {len(result.deleted)}개 삭제: {', '.join(result.deleted)}"
            )
            await self.es.indices.delete(index=",".join(result.deleted))
        if result.kept:
            logger.info(f"롤백용 인덱스 유지: {result.kept[0]}")
        return result
