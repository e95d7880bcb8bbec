"""Execution gateways: hand rendered view definitions to a database, or not."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ev_core.assembler import GenerationResult, ViewDefinition, batch_variables, render_batch
from ev_core.connectors.base import ConnectorConfig
from ev_core.issues import EXECUTION_FAILED, Issue
from ev_core.quoting import quote_name

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

_BANNER_RULE = "-- " + "=" * 95

PREVIEW_BANNER = [
    _BANNER_RULE,
    "-- A preview of the script to generate enriched views is provided below.",
    "-- No database objects have been created.",
    "-- Re-run with preview_only set to false (or --execute) to actually create the views.",
    _BANNER_RULE,
]

NO_ENTITIES_MESSAGE = (
    "-- No qualifying base tables were found; no view definitions were generated.\n"
    "-- Check source_schema, base_table_suffix and the lookup tables of the source database."
)

ALL_FAILED_MESSAGE = (
    "-- Qualifying base tables were found, but no view definition could be generated.\n"
    "-- See the NAMING_COLLISION issues for the affected entities."
)


class ExecutionGateway(ABC):
    """Creates or replaces one view per call."""

    def render(self, definition: ViewDefinition) -> str:
        """Text handed to ``execute``; never has side effects."""
        return definition.statement

    @abstractmethod
    def execute(self, statement: str) -> None:
        """Run one statement. Raises on failure."""


class PreviewGateway(ExecutionGateway):
    """Collects rendered batches instead of running them.

    ``variables`` maps entity names to batch variables; pass the result of
    ``batch_variables`` so every batch of one script declares a distinct name.
    """

    def __init__(self, target_database: str, variables: Optional[Dict[str, str]] = None):
        self.target_database = target_database
        self.variables = dict(variables or {})
        self.rendered: List[str] = []

    def render(self, definition: ViewDefinition) -> str:
        return render_batch(definition, self.target_database, self.variables.get(definition.entity_name))

    def execute(self, statement: str) -> None:
        self.rendered.append(statement)

    def script(self) -> str:
        return ";\n\n".join(self.rendered)


class SqlServerGateway(ExecutionGateway):
    """Runs each statement through ``sp_executesql`` in the target database.

    The statement travels as a parameter, so CREATE VIEW is always the first
    statement of its own batch.
    """

    def __init__(self, connector: Any, config: ConnectorConfig, target_database: str):
        self.connector = connector
        self.config = config
        self.target_database = target_database
        self._conn: Optional[Any] = None

    def __enter__(self) -> "SqlServerGateway":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def open(self) -> None:
        if self._conn is None:
            self._conn = self.connector.connect(self.config)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def execute(self, statement: str) -> None:
        self.open()
        cur = self._conn.cursor()
        try:
            cur.execute(f"EXEC {quote_name(self.target_database)}.dbo.sp_executesql ?", (statement,))
        finally:
            cur.close()


@dataclass
class ExecutionOutcome:
    entity_name: str
    view_name: str
    status: str
    error: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity_name,
            "view": self.view_name,
            "status": self.status,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ExecutionReport:
    outcomes: List[ExecutionOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failed(self) -> List[ExecutionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def issues(self) -> List[Issue]:
        return [
            Issue(
                severity="error",
                code=EXECUTION_FAILED,
                message=outcome.error,
                path=f"/entities/{outcome.entity_name}",
            )
            for outcome in self.failed
        ]

    def summary(self) -> str:
        lines = []
        for outcome in self.outcomes:
            marker = "OK  " if outcome.ok else "FAIL"
            line = f"  [{marker}] {outcome.view_name}"
            if outcome.error:
                line += f": {outcome.error}"
            lines.append(line)
        succeeded = len(self.outcomes) - len(self.failed)
        lines.append(f"Views created: {succeeded}, failed: {len(self.failed)}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": STATUS_SUCCESS if self.success else STATUS_FAILED,
            "view_count": len(self.outcomes),
            "failed_count": len(self.failed),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def execute_views(result: GenerationResult, gateway: ExecutionGateway) -> ExecutionReport:
    """Run every definition through the gateway, one entity at a time.

    Failures are collected per entity and never interrupt the batch.
    Entities that failed generation are reported without touching the gateway.
    """
    outcomes: Dict[str, ExecutionOutcome] = {}

    for entity_name in result.failed_entities:
        reason = next(
            (i.message for i in result.issues if i.path == f"/entities/{entity_name}"),
            "view definition could not be generated",
        )
        outcomes[entity_name] = ExecutionOutcome(entity_name, result.view_name(entity_name), STATUS_FAILED, reason)

    for entity_name, definition in result.definitions.items():
        started = time.time()
        try:
            gateway.execute(gateway.render(definition))
        except Exception as e:
            logger.error("Creating %s failed: %s", definition.view_name, e)
            outcomes[entity_name] = ExecutionOutcome(
                entity_name, definition.view_name, STATUS_FAILED, str(e),
                int((time.time() - started) * 1000),
            )
            continue
        logger.info("Created %s", definition.view_name)
        outcomes[entity_name] = ExecutionOutcome(
            entity_name, definition.view_name, STATUS_SUCCESS, "",
            int((time.time() - started) * 1000),
        )

    return ExecutionReport(outcomes=[outcomes[name] for name in sorted(outcomes)])


def preview_text(result: GenerationResult, target_database: str) -> str:
    """Banner plus the script a PreviewGateway collected for every definition."""
    if not result.definitions:
        message = ALL_FAILED_MESSAGE if result.failed_entities else NO_ENTITIES_MESSAGE
        return message + "\n"
    gateway = PreviewGateway(target_database, batch_variables(result.definitions))
    execute_views(result, gateway)
    return "\n".join(PREVIEW_BANNER) + "\n\n" + gateway.script()
