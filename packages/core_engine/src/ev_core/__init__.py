from ev_core.assembler import (
    GenerationResult,
    ViewDefinition,
    assemble_entity,
    batch_variables,
    generate_views,
    render_batch,
)
from ev_core.config import ConfigurationError, EnrichmentConfig, config_issues, load_config
from ev_core.connectors.base import CatalogResult, ConnectorConfig, get_connector, list_connectors
from ev_core.gateway import (
    ExecutionGateway,
    ExecutionOutcome,
    ExecutionReport,
    PreviewGateway,
    SqlServerGateway,
    execute_views,
    preview_text,
)
from ev_core.metadata import MetadataSnapshot, build_snapshot, dump_catalog, load_catalog
from ev_core.resolver import LookupCategory, NamingCollisionError, resolve_column, resolve_entity

__all__ = [
    "assemble_entity",
    "batch_variables",
    "build_snapshot",
    "CatalogResult",
    "config_issues",
    "ConfigurationError",
    "ConnectorConfig",
    "dump_catalog",
    "EnrichmentConfig",
    "execute_views",
    "ExecutionGateway",
    "ExecutionOutcome",
    "ExecutionReport",
    "GenerationResult",
    "generate_views",
    "get_connector",
    "list_connectors",
    "load_catalog",
    "load_config",
    "LookupCategory",
    "MetadataSnapshot",
    "NamingCollisionError",
    "PreviewGateway",
    "preview_text",
    "render_batch",
    "resolve_column",
    "resolve_entity",
    "SqlServerGateway",
    "ViewDefinition",
]
