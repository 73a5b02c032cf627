from unittest.mock import AsyncMock, MagicMock

import pytest


def make_es() -> MagicMock:
    """AsyncElasticsearch 대역. 기본값: 벌크 성공, alias/인덱스 없음."""
    es = MagicMock()
    es.bulk = AsyncMock(return_value={"errors": False, "items": []})
    es.index = AsyncMock(return_value={"result": "created"})
    es.close = AsyncMock()

    es.indices = MagicMock()
    es.indices.create = AsyncMock(return_value={"acknowledged": True})
    es.indices.put_settings = AsyncMock(return_value={"acknowledged": True})
    es.indices.update_aliases = AsyncMock(return_value={"acknowledged": True})
    es.indices.delete = AsyncMock(return_value={"acknowledged": True})

    es.cat = MagicMock()
    es.cat.aliases = AsyncMock(return_value=[])
    es.cat.indices = AsyncMock(return_value=[])
    return es


@pytest.fixture
def es() -> MagicMock:
    return make_es()


def action(doc_id: str, index: str = "idx", **fields) -> tuple[dict, dict]:
    return ({"index": {"_id": doc_id, "_index": index}}, {"id": doc_id, **fields})
