"""Config → AsyncElasticsearch 클라이언트"""

from elasticsearch import AsyncElasticsearch

from .config import Config


def build_es_client(config: Config) -> AsyncElasticsearch:
    """Config 기반으로 AsyncElasticsearch 클라이언트를 생성.

    - 단일 노드 (HTTP): es_url 사용
    - 클러스터 (HTTPS): es_nodes 사용, es_fingerprint + 인증 정보 필수

    Examples:
        config = Config(es_url="http://localhost:9200")

        config = Config(
            es_nodes=["https://es01:9200", "https://es02:9200"],
            es_fingerprint="B1:2A:...:CF",
            es_username="elastic",
            es_password="changeme",
        )
    """
    hosts = config.es_nodes or [config.es_url]

    if config.es_nodes is not None:
        if not config.es_fingerprint:
            raise ValueError(
                "es_fingerprint 필수: 클러스터 연결에는 "
                "TLS 인증서 fingerprint가 필요합니다."
            )
        if not config.es_api_key and not (config.es_username and config.es_password):
            raise ValueError(
                "인증 정보 필수: es_api_key 또는 "
                "es_username + es_password를 지정하세요."
            )

    kwargs: dict = {"hosts": hosts, "request_timeout": config.request_timeout}

    if config.es_api_key:
        kwargs["api_key"] = config.es_api_key
    elif config.es_username and config.es_password:
        kwargs["basic_auth"] = (config.es_username, config.es_password)

    if config.es_fingerprint:
        kwargs["ssl_assert_fingerprint"] = config.es_fingerprint
        kwargs["verify_certs"] = False

    return AsyncElasticsearch(**kwargs)
