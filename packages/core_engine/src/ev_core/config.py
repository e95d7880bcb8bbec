"""Generator configuration: loading, validation and defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ev_core.connectors.base import ConnectorConfig
from ev_core.issues import Issue, to_lines
from ev_core.loader import load_yaml_file
from ev_core.schema import default_config_schema_path, load_schema, schema_issues

DEFAULT_SOURCE_SCHEMA = "dbo"


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, issues: List[Issue]):
        self.issues = list(issues)
        details = "; ".join(to_lines(self.issues)) or "invalid configuration"
        super().__init__(f"Invalid configuration: {details}")


@dataclass(frozen=True)
class EnrichmentConfig:
    enriched_view_database: str
    enriched_view_schema: str
    enriched_column_suffix: str
    language_code: int
    preview_only: bool
    source_database: str
    base_table_suffix: str = ""
    source_schema: str = DEFAULT_SOURCE_SCHEMA
    connection: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], schema: Optional[Dict[str, Any]] = None) -> "EnrichmentConfig":
        issues = config_issues(data, schema)
        if issues:
            raise ConfigurationError(issues)
        return cls(
            enriched_view_database=data["enriched_view_database"],
            enriched_view_schema=data["enriched_view_schema"],
            enriched_column_suffix=data["enriched_column_suffix"],
            language_code=int(data["language_code"]),
            preview_only=bool(data["preview_only"]),
            source_database=data["source_database"],
            base_table_suffix=data.get("base_table_suffix") or "",
            source_schema=data.get("source_schema") or DEFAULT_SOURCE_SCHEMA,
            connection=dict(data.get("connection") or {}),
        )

    def connector_config(self) -> ConnectorConfig:
        conn = self.connection
        extra: Dict[str, Any] = {}
        for key in ("odbc_driver", "encrypt", "trust_server_certificate"):
            if conn.get(key):
                extra[key] = conn[key]
        return ConnectorConfig(
            connector_type="sqlserver",
            host=conn.get("host", ""),
            port=int(conn.get("port") or 0),
            database=self.source_database,
            schema=self.source_schema,
            user=conn.get("user", ""),
            password=conn.get("password", ""),
            extra=extra,
        )


def config_issues(data: Dict[str, Any], schema: Optional[Dict[str, Any]] = None) -> List[Issue]:
    if schema is None:
        schema = load_schema(default_config_schema_path())
    return schema_issues(data, schema)


def load_config(path: str, schema_path: Optional[str] = None) -> EnrichmentConfig:
    data = load_yaml_file(path, label="Config")
    schema = load_schema(schema_path) if schema_path else None
    return EnrichmentConfig.from_dict(data, schema)


STARTER_CONFIG = """# Enriched view generator configuration
enriched_view_database: MyEnrichedDatabase
enriched_view_schema: dbo
enriched_column_suffix: label
language_code: 1033
base_table_suffix: ""
preview_only: true
source_database: SynapseLinkForDataverseDBName
source_schema: dbo
connection:
  host: myworkspace-ondemand.sql.azuresynapse.net
  odbc_driver: ODBC Driver 18 for SQL Server
"""
