"""SQL Server-family connectors (SQL Server, Azure SQL, Synapse serverless SQL pool)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from ev_core.connectors.base import (
    GLOBAL_OPTIONSET_TABLE,
    LOOKUP_TABLES,
    OPTIONSET_TABLE,
    STATE_TABLE,
    STATUS_TABLE,
    BaseConnector,
    CatalogResult,
    ConnectorConfig,
)
from ev_core.quoting import quote_name

logger = logging.getLogger(__name__)

_COLUMNS_SQL = """
SELECT TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME, ORDINAL_POSITION, DATA_TYPE
FROM INFORMATION_SCHEMA.COLUMNS
WHERE TABLE_SCHEMA = ?
  AND TABLE_NAME NOT IN ({placeholders})
  AND TABLE_NAME LIKE ?
ORDER BY TABLE_NAME, ORDINAL_POSITION
"""

# (catalog section, lookup table, selected columns, row keys)
_LOOKUP_QUERIES = [
    ("option_sets", OPTIONSET_TABLE, "EntityName, OptionSetName", ("entity_name", "option_set_name")),
    ("global_option_sets", GLOBAL_OPTIONSET_TABLE, "OptionSetName", ("option_set_name",)),
    ("states", STATE_TABLE, "EntityName", ("entity_name",)),
    ("statuses", STATUS_TABLE, "EntityName", ("entity_name",)),
]


def like_suffix_pattern(suffix: str) -> str:
    """LIKE pattern matching names that end with ``suffix`` literally."""
    escaped = suffix.replace("[", "[[]").replace("%", "[%]").replace("_", "[_]")
    return "%" + escaped


class _SqlServerBaseConnector(BaseConnector):
    required_package = "pyodbc"
    default_port = 1433
    default_schema = "dbo"

    def _build_conn_string(self, config: ConnectorConfig, database: str = "") -> str:
        if config.connection_string:
            return config.connection_string

        server = config.host or "localhost"
        port = config.port or self.default_port
        if port:
            server = f"{server},{port}"

        driver = config.extra.get("odbc_driver", "ODBC Driver 18 for SQL Server")
        database = database or config.database or "master"
        encrypt = str(config.extra.get("encrypt", "yes"))
        trust = str(config.extra.get("trust_server_certificate", "yes"))

        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={server}",
            f"DATABASE={database}",
            f"Encrypt={encrypt}",
            f"TrustServerCertificate={trust}",
            "Connection Timeout=10",
        ]

        if config.user:
            parts.extend([
                f"UID={config.user}",
                f"PWD={config.password or ''}",
            ])
        else:
            parts.append("Trusted_Connection=yes")

        return ";".join(parts)

    def connect(self, config: ConnectorConfig, database: str = ""):
        import pyodbc

        return pyodbc.connect(self._build_conn_string(config, database), autocommit=True)

    def test_connection(self, config: ConnectorConfig) -> Tuple[bool, str]:
        try:
            conn = self.connect(config)
            conn.close()
            return True, "Connection successful"
        except ImportError:
            return False, "pyodbc not installed. Run: pip install pyodbc"
        except Exception as e:
            return False, f"Connection failed: {e}"

    def pull_catalog(self, config: ConnectorConfig, language_code: int, base_table_suffix: str = "") -> CatalogResult:
        conn = self.connect(config)
        try:
            return self._pull(conn, config, language_code, base_table_suffix)
        finally:
            conn.close()

    def _pull(self, conn: Any, config: ConnectorConfig, language_code: int, base_table_suffix: str) -> CatalogResult:
        schema_filter = config.schema or self.default_schema
        cur = conn.cursor()
        result = CatalogResult()

        placeholders = ", ".join("?" for _ in LOOKUP_TABLES)
        cur.execute(
            _COLUMNS_SQL.format(placeholders=placeholders),
            (schema_filter, *LOOKUP_TABLES, like_suffix_pattern(base_table_suffix)),
        )
        for table_schema, table_name, column_name, ordinal, data_type in cur.fetchall():
            result.columns.append({
                "table_schema": table_schema,
                "table_name": table_name,
                "column_name": column_name,
                "ordinal_position": int(ordinal),
                "data_type": data_type,
            })
        logger.info("Read %d columns from %s.%s", len(result.columns), config.database, schema_filter)

        for section, table, select_list, keys in _LOOKUP_QUERIES:
            rows: List[Dict[str, Any]] = getattr(result, section)
            try:
                cur.execute(
                    f"SELECT DISTINCT {select_list}, LocalizedLabelLanguageCode "
                    f"FROM {quote_name(schema_filter)}.{quote_name(table)} "
                    "WHERE LocalizedLabelLanguageCode = ?",
                    (language_code,),
                )
                fetched = cur.fetchall()
            except Exception as e:
                result.warnings.append(f"Could not read {table}: {e}")
                continue
            for row in fetched:
                entry = dict(zip(keys, row[:-1]))
                entry["language_code"] = int(row[-1])
                rows.append(entry)
            logger.debug("Read %d rows from %s", len(fetched), table)

        cur.close()
        return result


class SQLServerConnector(_SqlServerBaseConnector):
    connector_type = "sqlserver"
    display_name = "SQL Server"


class AzureSQLConnector(_SqlServerBaseConnector):
    connector_type = "azure_sql"
    display_name = "Azure SQL"


class SynapseServerlessConnector(_SqlServerBaseConnector):
    connector_type = "synapse"
    display_name = "Synapse Serverless SQL Pool"
