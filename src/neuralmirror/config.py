# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Central configuration – configurable via:
1. Environment variables (NM_ prefix)
2. .env file
3. JSON overrides file (NM_CONFIG_FILE, default /data/config.json)
"""
import json
import logging
import os
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILE = Path(os.environ.get("NM_CONFIG_FILE", "/data/config.json"))

SECRET_FIELDS = ("repository_password", "repository_search_secret", "opensearch_password")


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NM_", env_file=".env", extra="ignore")

    # ── Content repository ───────────────────────
    repository_url: str = "http://localhost:8080"
    repository_username: str = "admin"
    repository_password: str = "admin"
    repository_search_secret: str = ""
    solr_api_path: str = "/alfresco/service/api/solr"
    public_api_path: str = "/alfresco/api/-default-/public/alfresco/versions/1"

    # ── OpenSearch ───────────────────────────────
    opensearch_url: str = "https://localhost:9200"
    opensearch_username: str = "admin"
    opensearch_password: str = ""
    opensearch_verify_certs: bool = False
    index_name: str = "alfresco"
    control_index_name: str = "alfresco-control"
    pipeline_name: str = "neural-search-pipeline"
    embedding_model_id: str = ""
    embedding_dimension: int = 768

    # ── Batch indexer ────────────────────────────
    indexer_enabled: bool = True
    index_interval: int = 60
    batch_max_results: int = 100
    indexable_types: str = "{http://www.alfresco.org/model/content/1.0}content"
    segment_max_chars: int = 512
    request_timeout: float = 30.0

    # ── Cursor ───────────────────────────────────
    cursor_backend: Literal["index", "file"] = "index"
    cursor_path: str = "/data/cursor.json"

    # ── Access control ───────────────────────────
    acl_enabled: bool = True
    acl_grant_everyone: bool = True
    acl_everyone_authority: str = "GROUP_EVERYONE"

    # ── Search ───────────────────────────────────
    search_size: int = 20
    neural_k: int = 20
    hybrid_neural_k: int = 10

    # ── Web ──────────────────────────────────────
    web_host: str = "0.0.0.0"
    web_port: int = 8081
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> "Config":
        """Load config: ENV -> .env -> config file overrides."""
        config = cls()

        if CONFIG_FILE.exists():
            try:
                overrides = json.loads(CONFIG_FILE.read_text())
                for key, value in overrides.items():
                    if hasattr(config, key) and value != "":
                        setattr(config, key, value)
            except (OSError, ValueError) as e:
                logger.warning("Config file error (%s): %s", CONFIG_FILE, e)

        return config

    @property
    def indexable_type_set(self) -> frozenset[str]:
        return frozenset(t.strip() for t in self.indexable_types.split(",") if t.strip())

    def to_safe_dict(self) -> dict:
        """Config without secrets (for status display)."""
        d = self.model_dump()
        for key in SECRET_FIELDS:
            if d.get(key):
                d[key] = "***set***"
        return d
