"""Tests for the join resolver: eligibility, precedence, aliases, collisions."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from ev_core.metadata import ColumnMetadata, GlobalOptionSetEntry, MetadataSnapshot, OptionSetEntry, StateEntry, StatusEntry
from ev_core.resolver import (
    LookupCategory,
    NamingCollisionError,
    global_option_set_alias,
    is_integer_type,
    option_set_alias,
    resolve_column,
    resolve_entity,
    state_alias,
    status_alias,
)


def _col(name: str, position: int = 1, data_type: str = "int", entity: str = "account") -> ColumnMetadata:
    return ColumnMetadata(entity, "dbo", entity, name, position, data_type)


def _snapshot(option_sets=(), global_option_sets=(), states=(), statuses=(), language_code=1033) -> MetadataSnapshot:
    return MetadataSnapshot(
        language_code=language_code,
        option_sets=tuple(OptionSetEntry(e, n, language_code) for e, n in option_sets),
        global_option_sets=tuple(GlobalOptionSetEntry(n, language_code) for n in global_option_sets),
        states=tuple(StateEntry(e, language_code) for e in states),
        statuses=tuple(StatusEntry(e, language_code) for e in statuses),
    )


# ---------------------------------------------------------------------------
# Integer eligibility
# ---------------------------------------------------------------------------

class TestIntegerTypes:
    @pytest.mark.parametrize("data_type", ["int", "bigint", "smallint", "tinyint", "INT", " BigInt "])
    def test_integer_family(self, data_type):
        assert is_integer_type(data_type)

    @pytest.mark.parametrize("data_type", ["nvarchar", "decimal", "bit", "uniqueidentifier", "interval", "", None])
    def test_not_integer(self, data_type):
        assert not is_integer_type(data_type)

    def test_non_integer_column_never_resolves(self):
        snapshot = _snapshot(option_sets=[("account", "industrycode")], states=["account"])
        assert resolve_column(_col("industrycode", data_type="nvarchar"), snapshot).join is None
        assert resolve_column(_col("statecode", data_type="varchar"), snapshot).join is None


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestPrecedence:
    def test_entity_option_set_beats_global(self):
        snapshot = _snapshot(option_sets=[("account", "industrycode")], global_option_sets=["industrycode"])
        resolved = resolve_column(_col("industrycode"), snapshot)
        assert resolved.category == LookupCategory.OPTION_SET
        assert resolved.alias == "account_industrycode"
        assert resolved.join.entity_literal == "account"
        assert resolved.join.option_set_literal == "industrycode"
        assert resolved.join.key_column == "Option"

    def test_global_option_set_applies_to_any_entity(self):
        snapshot = _snapshot(global_option_sets=["preferredcontactmethodcode"])
        for entity in ("account", "contact"):
            resolved = resolve_column(_col("preferredcontactmethodcode", entity=entity), snapshot)
            assert resolved.category == LookupCategory.GLOBAL_OPTION_SET
            assert resolved.alias == "Global_preferredcontactmethodcode"
            assert resolved.join.entity_literal is None

    def test_option_set_of_other_entity_does_not_match(self):
        snapshot = _snapshot(option_sets=[("contact", "industrycode")])
        assert resolve_column(_col("industrycode"), snapshot).join is None

    def test_state_only_for_statecode(self):
        snapshot = _snapshot(states=["account"])
        resolved = resolve_column(_col("statecode"), snapshot)
        assert resolved.category == LookupCategory.STATE
        assert resolved.alias == "account_State"
        assert resolved.join.key_column == "State"
        assert resolve_column(_col("statuscode"), snapshot).join is None

    def test_status_only_for_statuscode(self):
        snapshot = _snapshot(statuses=["account"])
        resolved = resolve_column(_col("statuscode"), snapshot)
        assert resolved.category == LookupCategory.STATUS
        assert resolved.alias == "account_Status"
        assert resolved.join.key_column == "Status"
        assert resolve_column(_col("statecode"), snapshot).join is None

    def test_statecode_registered_as_option_set_uses_option_set(self):
        snapshot = _snapshot(option_sets=[("account", "statecode")], states=["account"])
        resolved = resolve_column(_col("statecode"), snapshot)
        assert resolved.category == LookupCategory.OPTION_SET
        assert resolved.alias == "account_statecode"

    def test_unregistered_integer_column_is_verbatim(self):
        snapshot = _snapshot(option_sets=[("account", "industrycode")], global_option_sets=["x"], states=["account"])
        resolved = resolve_column(_col("numberofemployees"), snapshot)
        assert resolved.join is None
        assert resolved.category is None

    def test_language_code_flows_into_join(self):
        snapshot = _snapshot(states=["account"], language_code=1036)
        assert resolve_column(_col("statecode"), snapshot).join.language_code == 1036


# ---------------------------------------------------------------------------
# Aliases and collisions
# ---------------------------------------------------------------------------

class TestAliases:
    def test_aliases_are_deterministic(self):
        assert option_set_alias("account", "industrycode") == "account_industrycode"
        assert global_option_set_alias("industrycode") == "Global_industrycode"
        assert state_alias("account") == "account_State"
        assert status_alias("account") == "account_Status"

    def test_resolve_entity_orders_by_ordinal(self):
        snapshot = _snapshot(states=["account"])
        columns = [_col("statecode", 3), _col("accountid", 1), _col("name", 2, "nvarchar")]
        resolved = resolve_entity("account", columns, snapshot)
        assert [r.column.column_name for r in resolved] == ["accountid", "name", "statecode"]

    def test_collision_between_option_set_and_state(self):
        # An option set column named "State" would share the state alias.
        snapshot = _snapshot(option_sets=[("account", "State")], states=["account"])
        columns = [_col("State", 1), _col("statecode", 2)]
        with pytest.raises(NamingCollisionError) as excinfo:
            resolve_entity("account", columns, snapshot)
        assert excinfo.value.entity_name == "account"
        assert excinfo.value.alias.lower() == "account_state"

    def test_collision_is_case_insensitive(self):
        snapshot = _snapshot(option_sets=[("account", "state")], states=["account"])
        with pytest.raises(NamingCollisionError):
            resolve_entity("account", [_col("state", 1), _col("statecode", 2)], snapshot)

    def test_collision_between_entity_and_global_alias(self):
        snapshot = _snapshot(option_sets=[("Global_a", "b")], global_option_sets=["a_b"])
        columns = [_col("b", 1, entity="Global_a"), _col("a_b", 2, entity="Global_a")]
        with pytest.raises(NamingCollisionError):
            resolve_entity("Global_a", columns, snapshot)

    def test_column_from_other_entity_rejected(self):
        with pytest.raises(ValueError):
            resolve_entity("account", [_col("x", entity="contact")], _snapshot())
