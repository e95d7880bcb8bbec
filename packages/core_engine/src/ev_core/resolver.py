"""Decide, per column, which lookup catalog supplies its localized label.

Precedence is fixed: entity option set, global option set, state
(``statecode`` only), status (``statuscode`` only). The first match wins.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ev_core.connectors.base import (
    GLOBAL_OPTIONSET_TABLE,
    OPTIONSET_TABLE,
    STATE_TABLE,
    STATUS_TABLE,
)
from ev_core.metadata import ColumnMetadata, MetadataSnapshot

logger = logging.getLogger(__name__)

STATE_COLUMN = "statecode"
STATUS_COLUMN = "statuscode"


class LookupCategory(enum.Enum):
    OPTION_SET = "option_set"
    GLOBAL_OPTION_SET = "global_option_set"
    STATE = "state"
    STATUS = "status"


class NamingCollisionError(ValueError):
    def __init__(self, entity_name: str, alias: str, first: "JoinSpec", second: "JoinSpec"):
        self.entity_name = entity_name
        self.alias = alias
        self.first = first
        self.second = second
        super().__init__(
            f"Alias {alias} in entity {entity_name} is claimed by both "
            f"{first.describe()} and {second.describe()}"
        )


@dataclass(frozen=True)
class JoinSpec:
    """Components of one lookup join predicate."""

    category: LookupCategory
    alias: str
    lookup_table: str
    key_column: str
    base_column: str
    language_code: int
    entity_literal: Optional[str] = None
    option_set_literal: Optional[str] = None

    @property
    def identity(self) -> Tuple[LookupCategory, Optional[str], Optional[str]]:
        return (self.category, self.entity_literal, self.option_set_literal)

    def describe(self) -> str:
        target = ".".join(p for p in (self.entity_literal, self.option_set_literal) if p)
        return f"{self.lookup_table}({target})"


@dataclass(frozen=True)
class ResolvedColumn:
    column: ColumnMetadata
    join: Optional[JoinSpec] = None

    @property
    def category(self) -> Optional[LookupCategory]:
        return self.join.category if self.join else None

    @property
    def alias(self) -> Optional[str]:
        return self.join.alias if self.join else None


def option_set_alias(entity_name: str, option_set_name: str) -> str:
    return f"{entity_name}_{option_set_name}"


def global_option_set_alias(option_set_name: str) -> str:
    return f"Global_{option_set_name}"


def state_alias(entity_name: str) -> str:
    return f"{entity_name}_State"


def status_alias(entity_name: str) -> str:
    return f"{entity_name}_Status"


def is_integer_type(data_type: str) -> bool:
    # Labels are keyed by integer codes: int, bigint, smallint, tinyint.
    return (data_type or "").strip().lower().endswith("int")


def resolve_column(column: ColumnMetadata, snapshot: MetadataSnapshot) -> ResolvedColumn:
    if not is_integer_type(column.data_type):
        return ResolvedColumn(column)

    entity = column.entity_name
    name = column.column_name
    language_code = snapshot.language_code

    if snapshot.has_option_set(entity, name):
        return ResolvedColumn(column, JoinSpec(
            category=LookupCategory.OPTION_SET,
            alias=option_set_alias(entity, name),
            lookup_table=OPTIONSET_TABLE,
            key_column="Option",
            base_column=name,
            language_code=language_code,
            entity_literal=entity,
            option_set_literal=name,
        ))

    if snapshot.has_global_option_set(name):
        return ResolvedColumn(column, JoinSpec(
            category=LookupCategory.GLOBAL_OPTION_SET,
            alias=global_option_set_alias(name),
            lookup_table=GLOBAL_OPTIONSET_TABLE,
            key_column="Option",
            base_column=name,
            language_code=language_code,
            option_set_literal=name,
        ))

    if name == STATE_COLUMN and snapshot.has_state(entity):
        return ResolvedColumn(column, JoinSpec(
            category=LookupCategory.STATE,
            alias=state_alias(entity),
            lookup_table=STATE_TABLE,
            key_column="State",
            base_column=name,
            language_code=language_code,
            entity_literal=entity,
        ))

    if name == STATUS_COLUMN and snapshot.has_status(entity):
        return ResolvedColumn(column, JoinSpec(
            category=LookupCategory.STATUS,
            alias=status_alias(entity),
            lookup_table=STATUS_TABLE,
            key_column="Status",
            base_column=name,
            language_code=language_code,
            entity_literal=entity,
        ))

    return ResolvedColumn(column)


def resolve_entity(
    entity_name: str,
    columns: Iterable[ColumnMetadata],
    snapshot: MetadataSnapshot,
) -> List[ResolvedColumn]:
    """Resolve every column of one entity.

    Raises NamingCollisionError when two distinct lookups would share an alias.
    SQL Server compares identifiers case-insensitively, so aliases are too.
    """
    resolved: List[ResolvedColumn] = []
    claimed: Dict[str, JoinSpec] = {}

    for column in sorted(columns, key=lambda c: c.ordinal_position):
        if column.entity_name != entity_name:
            raise ValueError(
                f"Column {column.table_name}.{column.column_name} does not belong to entity {entity_name}"
            )
        item = resolve_column(column, snapshot)
        if item.join is not None:
            key = item.join.alias.lower()
            existing = claimed.get(key)
            if existing is not None and existing.identity != item.join.identity:
                raise NamingCollisionError(entity_name, item.join.alias, existing, item.join)
            claimed.setdefault(key, item.join)
        resolved.append(item)

    logger.debug("%s: %d of %d columns resolved to lookups", entity_name, len(claimed), len(resolved))
    return resolved
