"""Render resolved columns into one CREATE OR ALTER VIEW statement per entity.

Each clause is a typed node that knows its text and its position in the
statement. Lines are ordered by ``sort_key``: projections (by ordinal
position), FROM, option-set joins, global-option-set joins, state/status
joins, terminator.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ev_core.issues import NAMING_COLLISION, Issue
from ev_core.metadata import ColumnMetadata, MetadataSnapshot, group_by_entity
from ev_core.quoting import quote_literal, quote_name
from ev_core.resolver import (
    JoinSpec,
    LookupCategory,
    NamingCollisionError,
    ResolvedColumn,
    resolve_entity,
)

if TYPE_CHECKING:
    from ev_core.config import EnrichmentConfig

logger = logging.getLogger(__name__)

BASE_ALIAS = "Base"
LABEL_COLUMN = "LocalizedLabel"
LANGUAGE_COLUMN = "LocalizedLabelLanguageCode"

RANK_PROJECTION = 0
RANK_FROM = 1
RANK_OPTION_SET_JOIN = 2
RANK_GLOBAL_OPTION_SET_JOIN = 3
RANK_STATE_STATUS_JOIN = 4
RANK_TERMINATOR = 5

_JOIN_RANKS = {
    LookupCategory.OPTION_SET: RANK_OPTION_SET_JOIN,
    LookupCategory.GLOBAL_OPTION_SET: RANK_GLOBAL_OPTION_SET_JOIN,
    LookupCategory.STATE: RANK_STATE_STATUS_JOIN,
    LookupCategory.STATUS: RANK_STATE_STATUS_JOIN,
}

SortKey = Tuple[int, int, str]


def label_column_name(column_name: str, suffix: str) -> str:
    """Replace a trailing ``code`` with the label suffix: statecode -> statelabel."""
    if column_name.lower().endswith("code"):
        return column_name[:-4] + suffix
    return column_name


@dataclass(frozen=True)
class ViewLine:
    entity_name: str
    text: str
    sort_key: SortKey


@dataclass(frozen=True)
class Projection:
    entity_name: str
    view_schema: str
    column_name: str
    ordinal_position: int
    first: bool
    label_alias: Optional[str] = None
    label_name: Optional[str] = None

    def expression(self) -> str:
        if self.label_alias is not None:
            return f"{quote_name(self.label_alias)}.{quote_name(LABEL_COLUMN)} AS {quote_name(self.label_name or self.column_name)}"
        return f"{quote_name(BASE_ALIAS)}.{quote_name(self.column_name)}"

    def render(self) -> str:
        if self.first:
            return (
                f"CREATE OR ALTER VIEW {quote_name(self.view_schema)}.{quote_name(self.entity_name)}\n"
                f"AS\n"
                f"SELECT {self.expression()}"
            )
        return f"\t,{self.expression()}"

    def to_line(self) -> ViewLine:
        return ViewLine(self.entity_name, self.render(), (RANK_PROJECTION, self.ordinal_position, ""))


@dataclass(frozen=True)
class FromClause:
    entity_name: str
    database: str
    table_schema: str
    table_name: str

    def render(self) -> str:
        return (
            f"FROM {quote_name(self.database)}.{quote_name(self.table_schema)}."
            f"{quote_name(self.table_name)} AS {BASE_ALIAS}"
        )

    def to_line(self) -> ViewLine:
        text = self.render()
        return ViewLine(self.entity_name, text, (RANK_FROM, 0, text))


@dataclass(frozen=True)
class JoinClause:
    entity_name: str
    database: str
    lookup_schema: str
    spec: JoinSpec

    def predicates(self) -> List[str]:
        alias = quote_name(self.spec.alias)
        parts: List[str] = []
        if self.spec.entity_literal is not None:
            parts.append(f"{alias}.[EntityName] = {quote_literal(self.spec.entity_literal)}")
        if self.spec.option_set_literal is not None:
            parts.append(f"{alias}.[OptionSetName] = {quote_literal(self.spec.option_set_literal)}")
        parts.append(
            f"{quote_name(BASE_ALIAS)}.{quote_name(self.spec.base_column)} = {alias}.{quote_name(self.spec.key_column)}"
        )
        parts.append(f"{alias}.{quote_name(LANGUAGE_COLUMN)} = {int(self.spec.language_code)}")
        return parts

    def render(self) -> str:
        table = f"{quote_name(self.database)}.{quote_name(self.lookup_schema)}.{quote_name(self.spec.lookup_table)}"
        lines = [f"\tLEFT JOIN {table} AS {quote_name(self.spec.alias)}"]
        for idx, predicate in enumerate(self.predicates()):
            keyword = "ON" if idx == 0 else "AND"
            lines.append(f"\t\t{keyword} {predicate}")
        return "\n".join(lines)

    def to_line(self) -> ViewLine:
        text = self.render()
        return ViewLine(self.entity_name, text, (_JOIN_RANKS[self.spec.category], 0, text))


@dataclass(frozen=True)
class Terminator:
    entity_name: str

    def render(self) -> str:
        return ";"

    def to_line(self) -> ViewLine:
        return ViewLine(self.entity_name, self.render(), (RANK_TERMINATOR, 0, ""))


def view_name_for(view_schema: str, entity_name: str) -> str:
    return f"{quote_name(view_schema)}.{quote_name(entity_name)}"


ClauseNode = Union[Projection, FromClause, JoinClause, Terminator]


@dataclass(frozen=True)
class ViewDefinition:
    entity_name: str
    view_schema: str
    lines: Tuple[ViewLine, ...]

    @property
    def view_name(self) -> str:
        return view_name_for(self.view_schema, self.entity_name)

    @property
    def statement(self) -> str:
        return "\n".join(line.text for line in self.lines)

    def join_count(self) -> int:
        return sum(1 for line in self.lines if RANK_FROM < line.sort_key[0] < RANK_TERMINATOR)


@dataclass
class GenerationResult:
    definitions: "OrderedDict[str, ViewDefinition]" = field(default_factory=OrderedDict)
    issues: List[Issue] = field(default_factory=list)
    failed_entities: List[str] = field(default_factory=list)
    view_schema: str = "dbo"

    def view_name(self, entity_name: str) -> str:
        return view_name_for(self.view_schema, entity_name)


def assemble_entity(
    entity_name: str,
    resolved: Sequence[ResolvedColumn],
    config: "EnrichmentConfig",
) -> ViewDefinition:
    if not resolved:
        raise ValueError(f"Entity {entity_name} has no columns")

    ordered = sorted(resolved, key=lambda r: r.column.ordinal_position)
    first_position = ordered[0].column.ordinal_position
    nodes: List[ClauseNode] = []
    joins: Dict[str, JoinClause] = {}

    for item in ordered:
        column: ColumnMetadata = item.column
        if column.entity_name != entity_name:
            raise ValueError(f"Column {column.column_name} does not belong to entity {entity_name}")
        label_alias = None
        label_name = None
        if item.join is not None:
            label_alias = item.join.alias
            label_name = label_column_name(column.column_name, config.enriched_column_suffix)
            joins.setdefault(item.join.alias.lower(), JoinClause(
                entity_name=entity_name,
                database=config.source_database,
                lookup_schema=config.source_schema,
                spec=item.join,
            ))
        nodes.append(Projection(
            entity_name=entity_name,
            view_schema=config.enriched_view_schema,
            column_name=column.column_name,
            ordinal_position=column.ordinal_position,
            first=column.ordinal_position == first_position,
            label_alias=label_alias,
            label_name=label_name,
        ))

    first_column = ordered[0].column
    nodes.append(FromClause(
        entity_name=entity_name,
        database=config.source_database,
        table_schema=first_column.table_schema,
        table_name=first_column.table_name,
    ))
    nodes.extend(joins.values())
    nodes.append(Terminator(entity_name))

    lines = sorted((node.to_line() for node in nodes), key=lambda line: line.sort_key)
    definition = ViewDefinition(entity_name=entity_name, view_schema=config.enriched_view_schema, lines=tuple(lines))
    logger.debug("%s: %d columns, %d joins", definition.view_name, len(ordered), definition.join_count())
    return definition


def generate_views(snapshot: MetadataSnapshot, config: "EnrichmentConfig") -> GenerationResult:
    """Build one view definition per entity in the snapshot.

    An entity whose lookups collide on an alias is reported and skipped;
    the remaining entities are still generated.
    """
    result = GenerationResult(issues=list(snapshot.warnings), view_schema=config.enriched_view_schema)

    for entity_name, columns in group_by_entity(snapshot.columns).items():
        try:
            resolved = resolve_entity(entity_name, columns, snapshot)
        except NamingCollisionError as e:
            logger.error("Skipping %s: %s", entity_name, e)
            result.failed_entities.append(entity_name)
            result.issues.append(Issue(
                severity="error",
                code=NAMING_COLLISION,
                message=str(e),
                path=f"/entities/{entity_name}",
            ))
            continue
        result.definitions[entity_name] = assemble_entity(entity_name, resolved, config)

    logger.info("Generated %d view definitions (%d failed)", len(result.definitions), len(result.failed_entities))
    return result


def _batch_variable(entity_name: str) -> str:
    name = re.sub(r"\W", "_", entity_name)
    if not name or name[0].isdigit():
        name = "_" + name
    return "@" + name


def batch_variables(entity_names: Iterable[str]) -> Dict[str, str]:
    """Assign each entity a batch variable, unique within one script.

    T-SQL variable names are case-insensitive and entity names are
    sanitized, so ``my-table``, ``my_table`` and ``My_Table`` would all map
    to ``@my_table``; later entities get a numeric suffix.
    """
    assigned: Dict[str, str] = {}
    taken = set()
    for entity_name in entity_names:
        base = _batch_variable(entity_name)
        variable = base
        counter = 2
        while variable.lower() in taken:
            variable = f"{base}_{counter}"
            counter += 1
        taken.add(variable.lower())
        assigned[entity_name] = variable
    return assigned


def render_batch(definition: ViewDefinition, target_database: str, variable: Optional[str] = None) -> str:
    """Wrap a statement so CREATE VIEW runs as its own batch in the target database."""
    variable = variable or _batch_variable(definition.entity_name)
    escaped = definition.statement.replace("'", "''")
    return (
        f"DECLARE {variable} NVARCHAR(MAX) = N'\n{escaped}'\n"
        f"EXEC {quote_name(target_database)}.dbo.sp_executesql {variable}\n"
    )
