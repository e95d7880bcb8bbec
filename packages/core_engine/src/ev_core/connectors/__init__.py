"""Metadata catalog connectors.

Each connector implements the same interface:
  pull_catalog(config, language_code, base_table_suffix="") -> CatalogResult

The catalog carries the raw column and lookup rows consumed by
``ev_core.metadata.build_snapshot``.
"""

from ev_core.connectors.base import (
    BaseConnector,
    CatalogResult,
    ConnectorConfig,
    get_connector,
    list_connectors,
)
from ev_core.connectors.sqlserver import (
    AzureSQLConnector,
    SQLServerConnector,
    SynapseServerlessConnector,
)

__all__ = [
    "AzureSQLConnector",
    "BaseConnector",
    "CatalogResult",
    "ConnectorConfig",
    "SQLServerConnector",
    "SynapseServerlessConnector",
    "get_connector",
    "list_connectors",
]
