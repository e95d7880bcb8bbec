"""In-memory model of the base-table columns and the four lookup catalogs."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Tuple

from ev_core.connectors.base import (
    GLOBAL_OPTIONSET_TABLE,
    LOOKUP_TABLES,
    OPTIONSET_TABLE,
    STATE_TABLE,
    STATUS_TABLE,
    CatalogResult,
)
from ev_core.issues import METADATA_GAP, Issue
from ev_core.loader import load_yaml_file, write_yaml_file

if TYPE_CHECKING:
    from ev_core.config import EnrichmentConfig

logger = logging.getLogger(__name__)

_EXCLUDED_TABLES = frozenset(name.lower() for name in LOOKUP_TABLES)

# Catalog files may use the INFORMATION_SCHEMA / lookup table column names.
_KEY_ALIASES = {
    "TABLE_SCHEMA": "table_schema",
    "TABLE_NAME": "table_name",
    "COLUMN_NAME": "column_name",
    "ORDINAL_POSITION": "ordinal_position",
    "DATA_TYPE": "data_type",
    "EntityName": "entity_name",
    "OptionSetName": "option_set_name",
    "LocalizedLabelLanguageCode": "language_code",
}


@dataclass(frozen=True)
class ColumnMetadata:
    entity_name: str
    table_schema: str
    table_name: str
    column_name: str
    ordinal_position: int
    data_type: str


@dataclass(frozen=True, order=True)
class OptionSetEntry:
    entity_name: str
    option_set_name: str
    language_code: int


@dataclass(frozen=True, order=True)
class GlobalOptionSetEntry:
    option_set_name: str
    language_code: int


@dataclass(frozen=True, order=True)
class StateEntry:
    entity_name: str
    language_code: int


@dataclass(frozen=True, order=True)
class StatusEntry:
    entity_name: str
    language_code: int


@dataclass(frozen=True)
class MetadataSnapshot:
    """Columns and lookup entries for one language code."""

    language_code: int
    columns: Tuple[ColumnMetadata, ...] = ()
    option_sets: Tuple[OptionSetEntry, ...] = ()
    global_option_sets: Tuple[GlobalOptionSetEntry, ...] = ()
    states: Tuple[StateEntry, ...] = ()
    statuses: Tuple[StatusEntry, ...] = ()
    warnings: Tuple[Issue, ...] = ()
    _option_set_keys: FrozenSet[Tuple[str, str]] = field(init=False, repr=False, compare=False)
    _global_keys: FrozenSet[str] = field(init=False, repr=False, compare=False)
    _state_keys: FrozenSet[str] = field(init=False, repr=False, compare=False)
    _status_keys: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_option_set_keys", frozenset((e.entity_name, e.option_set_name) for e in self.option_sets))
        object.__setattr__(self, "_global_keys", frozenset(e.option_set_name for e in self.global_option_sets))
        object.__setattr__(self, "_state_keys", frozenset(e.entity_name for e in self.states))
        object.__setattr__(self, "_status_keys", frozenset(e.entity_name for e in self.statuses))

    def has_option_set(self, entity_name: str, option_set_name: str) -> bool:
        return (entity_name, option_set_name) in self._option_set_keys

    def has_global_option_set(self, option_set_name: str) -> bool:
        return option_set_name in self._global_keys

    def has_state(self, entity_name: str) -> bool:
        return entity_name in self._state_keys

    def has_status(self, entity_name: str) -> bool:
        return entity_name in self._status_keys

    def entity_names(self) -> List[str]:
        return list(group_by_entity(self.columns).keys())


def _normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {_KEY_ALIASES.get(key, key): value for key, value in row.items()}


def entity_name_for(table_name: str, base_table_suffix: str) -> str:
    if base_table_suffix:
        return table_name[: len(table_name) - len(base_table_suffix)]
    return table_name


def _is_base_table(row: Dict[str, Any], source_schema: str, base_table_suffix: str) -> bool:
    table_name = str(row["table_name"])
    if str(row["table_schema"]) != source_schema:
        return False
    if table_name.lower() in _EXCLUDED_TABLES:
        return False
    if base_table_suffix and not table_name.lower().endswith(base_table_suffix.lower()):
        return False
    return len(table_name) > len(base_table_suffix)


def _columns_from_rows(rows: Iterable[Dict[str, Any]], source_schema: str, base_table_suffix: str) -> List[ColumnMetadata]:
    columns: List[ColumnMetadata] = []
    for raw in rows:
        row = _normalize_row(raw)
        if not _is_base_table(row, source_schema, base_table_suffix):
            continue
        table_name = str(row["table_name"])
        columns.append(
            ColumnMetadata(
                entity_name=entity_name_for(table_name, base_table_suffix),
                table_schema=str(row["table_schema"]),
                table_name=table_name,
                column_name=str(row["column_name"]),
                ordinal_position=int(row["ordinal_position"]),
                data_type=str(row["data_type"]),
            )
        )
    columns.sort(key=lambda c: (c.entity_name, c.ordinal_position))
    return columns


def _for_language(rows: Iterable[Dict[str, Any]], language_code: int) -> List[Dict[str, Any]]:
    selected = []
    for raw in rows:
        row = _normalize_row(raw)
        if int(row["language_code"]) == language_code:
            selected.append(row)
    return selected


def build_snapshot(catalog: CatalogResult, config: "EnrichmentConfig") -> MetadataSnapshot:
    """Filter a raw catalog down to the base tables and one language code.

    Lookup catalogs without rows for the configured language contribute no
    entries and produce a ``METADATA_GAP`` warning instead of an error.
    """
    language_code = config.language_code
    columns = _columns_from_rows(catalog.columns, config.source_schema, config.base_table_suffix)

    option_sets = sorted({
        OptionSetEntry(str(r["entity_name"]), str(r["option_set_name"]), language_code)
        for r in _for_language(catalog.option_sets, language_code)
    })
    global_option_sets = sorted({
        GlobalOptionSetEntry(str(r["option_set_name"]), language_code)
        for r in _for_language(catalog.global_option_sets, language_code)
    })
    states = sorted({
        StateEntry(str(r["entity_name"]), language_code)
        for r in _for_language(catalog.states, language_code)
    })
    statuses = sorted({
        StatusEntry(str(r["entity_name"]), language_code)
        for r in _for_language(catalog.statuses, language_code)
    })

    warnings: List[Issue] = []
    for table, entries in (
        (OPTIONSET_TABLE, option_sets),
        (GLOBAL_OPTIONSET_TABLE, global_option_sets),
        (STATE_TABLE, states),
        (STATUS_TABLE, statuses),
    ):
        if not entries:
            warnings.append(
                Issue(
                    severity="warn",
                    code=METADATA_GAP,
                    message=f"No localized labels for language code {language_code}; "
                    "affected columns keep their code values.",
                    path=f"/lookups/{table}",
                )
            )
            logger.warning("%s has no rows for language code %s", table, language_code)

    snapshot = MetadataSnapshot(
        language_code=language_code,
        columns=tuple(columns),
        option_sets=tuple(option_sets),
        global_option_sets=tuple(global_option_sets),
        states=tuple(states),
        statuses=tuple(statuses),
        warnings=tuple(warnings),
    )
    logger.info(
        "Snapshot: %d entities, %d columns, %d option sets, %d global option sets, %d states, %d statuses",
        len(snapshot.entity_names()), len(columns), len(option_sets), len(global_option_sets), len(states), len(statuses),
    )
    return snapshot


def group_by_entity(columns: Iterable[ColumnMetadata]) -> "OrderedDict[str, List[ColumnMetadata]]":
    grouped: Dict[str, List[ColumnMetadata]] = {}
    for column in columns:
        grouped.setdefault(column.entity_name, []).append(column)
    ordered: "OrderedDict[str, List[ColumnMetadata]]" = OrderedDict()
    for entity_name in sorted(grouped):
        ordered[entity_name] = sorted(grouped[entity_name], key=lambda c: c.ordinal_position)
    return ordered


def load_catalog(path: str) -> CatalogResult:
    return CatalogResult.from_dict(load_yaml_file(path, label="Catalog"))


def dump_catalog(catalog: CatalogResult, path: str) -> None:
    write_yaml_file(path, catalog.to_dict())
