"""Base connector interface and registry for metadata catalog connectors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Lookup tables maintained by Synapse Link for Dataverse next to the entity tables.
OPTIONSET_TABLE = "OptionsetMetadata"
GLOBAL_OPTIONSET_TABLE = "GlobalOptionsetMetadata"
STATE_TABLE = "StateMetadata"
STATUS_TABLE = "StatusMetadata"
TARGET_TABLE = "TargetMetadata"

LOOKUP_TABLES = (
    OPTIONSET_TABLE,
    GLOBAL_OPTIONSET_TABLE,
    STATE_TABLE,
    STATUS_TABLE,
    TARGET_TABLE,
)

CATALOG_KEYS = ("columns", "option_sets", "global_option_sets", "states", "statuses")


@dataclass
class ConnectorConfig:
    """Configuration for a database connector."""

    connector_type: str
    host: str = ""
    port: int = 0
    database: str = ""
    schema: str = ""
    user: str = ""
    password: str = ""
    connection_string: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CatalogResult:
    """Raw catalog rows pulled from a metadata source.

    ``columns`` rows carry ``table_schema``, ``table_name``, ``column_name``,
    ``ordinal_position`` and ``data_type``. Lookup rows carry ``entity_name``
    and/or ``option_set_name`` plus ``language_code``.
    """

    columns: List[Dict[str, Any]] = field(default_factory=list)
    option_sets: List[Dict[str, Any]] = field(default_factory=list)
    global_option_sets: List[Dict[str, Any]] = field(default_factory=list)
    states: List[Dict[str, Any]] = field(default_factory=list)
    statuses: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def tables_found(self) -> int:
        return len({(row.get("table_schema"), row.get("table_name")) for row in self.columns})

    def to_dict(self) -> Dict[str, Any]:
        return {key: list(getattr(self, key)) for key in CATALOG_KEYS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogResult":
        unknown = sorted(set(data) - set(CATALOG_KEYS))
        if unknown:
            raise ValueError(f"Unknown catalog sections: {', '.join(unknown)}")
        sections: Dict[str, List[Dict[str, Any]]] = {}
        for key in CATALOG_KEYS:
            rows = data.get(key) or []
            if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
                raise ValueError(f"Catalog section '{key}' must be a list of objects.")
            sections[key] = rows
        return cls(**sections)

    def summary(self) -> str:
        lines = [
            f"Tables: {self.tables_found}",
            f"Columns: {len(self.columns)}",
            f"Option sets: {len(self.option_sets)}",
            f"Global option sets: {len(self.global_option_sets)}",
            f"States: {len(self.states)}",
            f"Statuses: {len(self.statuses)}",
        ]
        if self.warnings:
            lines.append(f"Warnings: {len(self.warnings)}")
            for w in self.warnings:
                lines.append(f"  - {w}")
        return "\n".join(lines)


class BaseConnector(ABC):
    """Abstract base class for metadata catalog connectors."""

    connector_type: str = ""
    display_name: str = ""
    required_package: str = ""

    @abstractmethod
    def test_connection(self, config: ConnectorConfig) -> Tuple[bool, str]:
        """Test if the connection can be established.

        Returns (success, message).
        """

    @abstractmethod
    def pull_catalog(self, config: ConnectorConfig, language_code: int, base_table_suffix: str = "") -> CatalogResult:
        """Read the column catalog and the lookup tables for one language."""

    def check_driver(self) -> Tuple[bool, str]:
        """Check if the required Python driver package is installed."""
        if not self.required_package:
            return True, "No driver required"
        try:
            __import__(self.required_package)
            return True, f"{self.required_package} is installed"
        except ImportError:
            return False, f"Missing driver: pip install {self.required_package}"


# ---------------------------------------------------------------------------
# Connector registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[str, BaseConnector] = {}


def _register(connector: BaseConnector) -> None:
    _REGISTRY[connector.connector_type] = connector


def get_connector(connector_type: str) -> Optional[BaseConnector]:
    """Get a connector by type name."""
    return _REGISTRY.get(connector_type)


def list_connectors() -> List[Dict[str, str]]:
    """List all registered connectors."""
    result = []
    for name, conn in sorted(_REGISTRY.items()):
        ok, msg = conn.check_driver()
        result.append({
            "type": name,
            "name": conn.display_name,
            "driver": conn.required_package or "none",
            "installed": ok,
            "status": msg,
        })
    return result


def register_all() -> None:
    """Register all built-in connectors."""
    from ev_core.connectors.sqlserver import (
        AzureSQLConnector,
        SQLServerConnector,
        SynapseServerlessConnector,
    )

    for cls in [
        SQLServerConnector,
        AzureSQLConnector,
        SynapseServerlessConnector,
    ]:
        _register(cls())


register_all()
