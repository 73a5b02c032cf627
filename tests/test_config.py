"""Config.from_env + build_es_client"""

from unittest.mock import patch

import pytest

from es_csv_indexer import Config, build_es_client


def test_defaults():
    c = Config()
    assert c.chunk_size == 10_000
    assert c.max_concurrent_requests == 2
    assert c.release_replicas == 3
    assert c.release_refresh_interval == "1s"
    assert c.transport_max_retries == 0
    assert c.max_rows == 0


def test_from_env_reads_tuning_knobs(monkeypatch):
    monkeypatch.setenv("INDEX_CHUNK_SIZE", "5000")
    monkeypatch.setenv("INDEX_MAX_CONCURRENT_REQUESTS", "4")
    monkeypatch.setenv("INDEX_NB_REPLICAS", "1")
    monkeypatch.setenv("INDEX_REFRESH_INTERVAL", "30s")
    monkeypatch.setenv("MAX_ROWS", "100")
    monkeypatch.setenv("PIPELINE_VERSION", "2024.06")

    c = Config.from_env(alias="companies")

    assert c.chunk_size == 5000
    assert c.max_concurrent_requests == 4
    assert c.release_replicas == 1
    assert c.release_refresh_interval == "30s"
    assert c.max_rows == 100
    assert c.pipeline_version == "2024.06"
    assert c.alias == "companies"


def test_invalid_env_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("INDEX_CHUNK_SIZE", "lots")
    monkeypatch.setenv("INDEX_MAX_CONCURRENT_REQUESTS", "")
    c = Config.from_env()
    assert c.chunk_size == 10_000
    assert c.max_concurrent_requests == 2


def test_overrides_beat_env_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("INDEX_CHUNK_SIZE", "5000")
    monkeypatch.delenv("INDEX_MAX_CONCURRENT_REQUESTS", raising=False)
    c = Config.from_env(chunk_size=200, max_concurrent_requests=None)
    assert c.chunk_size == 200
    assert c.max_concurrent_requests == 2


def test_unknown_override_rejected():
    with pytest.raises(ValueError):
        Config.from_env(chunksize=10)


def test_concurrency_clamped_to_one():
    assert Config(max_concurrent_requests=0).max_concurrent_requests == 1


def test_credentials_hidden_from_repr():
    c = Config(es_password="hunter2", es_api_key="secret-key")
    assert "hunter2" not in repr(c)
    assert "secret-key" not in repr(c)


def test_build_es_client_single_node():
    with patch("es_csv_indexer.client.AsyncElasticsearch") as MockES:
        build_es_client(Config(es_url="http://localhost:9200"))
        kwargs = MockES.call_args.kwargs
        assert kwargs["hosts"] == ["http://localhost:9200"]
        assert "ssl_assert_fingerprint" not in kwargs


def test_build_es_client_cluster_auth():
    with patch("es_csv_indexer.client.AsyncElasticsearch") as MockES:
        build_es_client(Config(
            es_nodes=["https://es01:9200", "https://es02:9200"],
            es_fingerprint="AA:BB:CC",
            es_username="elastic",
            es_password="secret",
        ))
        kwargs = MockES.call_args.kwargs
        assert kwargs["hosts"] == ["https://es01:9200", "https://es02:9200"]
        assert kwargs["ssl_assert_fingerprint"] == "AA:BB:CC"
        assert kwargs["basic_auth"] == ("elastic", "secret")

        MockES.reset_mock()
        build_es_client(Config(
            es_nodes=["https://es01:9200"], es_fingerprint="AA:BB:CC", es_api_key="key",
        ))
        kwargs = MockES.call_args.kwargs
        assert kwargs["api_key"] == "key"
        assert "basic_auth" not in kwargs


def test_build_es_client_cluster_requires_fingerprint_and_auth():
    with pytest.raises(ValueError, match="fingerprint"):
        build_es_client(Config(es_nodes=["https://es01:9200"]))
    with pytest.raises(ValueError, match="인증"):
        build_es_client(Config(es_nodes=["https://es01:9200"], es_fingerprint="AA"))
