"""Tests for metadata catalog connectors.

Covers:
  - Connector registry and driver checks
  - SQL Server connection strings
  - Catalog pull against a mocked pyodbc connection
  - Missing lookup tables surfacing as warnings
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))

from ev_core.connectors.base import (
    LOOKUP_TABLES,
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
    like_suffix_pattern,
)
from ev_core.quoting import quote_name


def _fake_connection(fetch_results, fail_on=None):
    cursor = MagicMock()
    cursor.fetchall.side_effect = list(fetch_results)

    def _execute(sql, params=()):
        if fail_on and fail_on in sql:
            raise RuntimeError(f"Invalid object name '{fail_on}'")

    cursor.execute.side_effect = _execute
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn, cursor


class TestRegistry(unittest.TestCase):
    def test_builtin_connectors_registered(self):
        types = [c["type"] for c in list_connectors()]
        self.assertEqual(["azure_sql", "sqlserver", "synapse"], types)

    def test_get_connector(self):
        self.assertIsInstance(get_connector("synapse"), SynapseServerlessConnector)
        self.assertIsInstance(get_connector("sqlserver"), SQLServerConnector)
        self.assertIsInstance(get_connector("azure_sql"), AzureSQLConnector)
        self.assertIsNone(get_connector("oracle"))

    def test_all_require_pyodbc(self):
        for c in list_connectors():
            self.assertEqual("pyodbc", c["driver"])
            self.assertIn(c["installed"], (True, False))

    def test_missing_driver_message(self):
        connector = SynapseServerlessConnector()
        connector.required_package = "ev_missing_odbc_driver"
        ok, msg = connector.check_driver()
        self.assertFalse(ok)
        self.assertIn("pip install ev_missing_odbc_driver", msg)

    def test_base_is_abstract(self):
        with self.assertRaises(TypeError):
            BaseConnector()


class TestConnectionString(unittest.TestCase):
    def test_sql_login(self):
        config = ConnectorConfig(
            connector_type="synapse",
            host="ws-ondemand.sql.azuresynapse.net",
            database="dataverse",
            user="reader",
            password="pw",
        )
        conn_str = SynapseServerlessConnector()._build_conn_string(config)
        self.assertIn("DRIVER={ODBC Driver 18 for SQL Server}", conn_str)
        self.assertIn("SERVER=ws-ondemand.sql.azuresynapse.net,1433", conn_str)
        self.assertIn("DATABASE=dataverse", conn_str)
        self.assertIn("UID=reader", conn_str)
        self.assertNotIn("Trusted_Connection", conn_str)

    def test_trusted_connection_and_database_override(self):
        config = ConnectorConfig(connector_type="sqlserver", database="dataverse", extra={"odbc_driver": "ODBC Driver 17 for SQL Server"})
        conn_str = SQLServerConnector()._build_conn_string(config, database="EnrichedDB")
        self.assertIn("DRIVER={ODBC Driver 17 for SQL Server}", conn_str)
        self.assertIn("DATABASE=EnrichedDB", conn_str)
        self.assertIn("Trusted_Connection=yes", conn_str)

    def test_explicit_connection_string_wins(self):
        config = ConnectorConfig(connector_type="sqlserver", connection_string="DSN=warehouse")
        self.assertEqual("DSN=warehouse", SQLServerConnector()._build_conn_string(config))

    def test_like_suffix_pattern_escapes_wildcards(self):
        self.assertEqual("%", like_suffix_pattern(""))
        self.assertEqual("%[_]partitioned", like_suffix_pattern("_partitioned"))
        self.assertEqual("%[[]x[%]", like_suffix_pattern("[x%"))

    def test_quote_name(self):
        self.assertEqual("[dbo]", quote_name("dbo"))
        self.assertEqual("[a]]b]", quote_name("a]b"))


class TestPullCatalog(unittest.TestCase):
    def setUp(self) -> None:
        self.config = ConnectorConfig(connector_type="synapse", database="dataverse", schema="dbo")
        self.connector = SynapseServerlessConnector()

    def test_pull_reads_columns_and_lookups(self):
        conn, cursor = _fake_connection([
            [("dbo", "account", "accountid", 1, "uniqueidentifier"), ("dbo", "account", "statecode", 2, "int")],
            [("account", "industrycode", 1033)],
            [("preferredcontactmethodcode", 1033)],
            [("account", 1033)],
            [("account", 1033)],
        ])
        with patch.object(SynapseServerlessConnector, "connect", return_value=conn):
            result = self.connector.pull_catalog(self.config, language_code=1033, base_table_suffix="_partitioned")

        self.assertIsInstance(result, CatalogResult)
        self.assertEqual(
            {"table_schema": "dbo", "table_name": "account", "column_name": "statecode", "ordinal_position": 2, "data_type": "int"},
            result.columns[1],
        )
        self.assertEqual([{"entity_name": "account", "option_set_name": "industrycode", "language_code": 1033}], result.option_sets)
        self.assertEqual([{"option_set_name": "preferredcontactmethodcode", "language_code": 1033}], result.global_option_sets)
        self.assertEqual([{"entity_name": "account", "language_code": 1033}], result.states)
        self.assertEqual([{"entity_name": "account", "language_code": 1033}], result.statuses)
        self.assertEqual([], result.warnings)
        conn.close.assert_called_once()

        columns_sql, columns_params = cursor.execute.call_args_list[0][0]
        self.assertIn("INFORMATION_SCHEMA.COLUMNS", columns_sql)
        self.assertEqual(("dbo", *LOOKUP_TABLES, "%[_]partitioned"), columns_params)

        lookup_sql, lookup_params = cursor.execute.call_args_list[1][0]
        self.assertIn("FROM [dbo].[OptionsetMetadata]", lookup_sql)
        self.assertIn("SELECT DISTINCT", lookup_sql)
        self.assertEqual((1033,), lookup_params)

    def test_missing_lookup_table_becomes_warning(self):
        conn, _ = _fake_connection(
            [
                [("dbo", "account", "statecode", 1, "int")],
                [],
                [],
                [("account", 1033)],
            ],
            fail_on="StatusMetadata",
        )
        with patch.object(SynapseServerlessConnector, "connect", return_value=conn):
            result = self.connector.pull_catalog(self.config, language_code=1033)

        self.assertEqual([], result.statuses)
        self.assertEqual(1, len(result.warnings))
        self.assertIn("StatusMetadata", result.warnings[0])
        self.assertIn("Warnings: 1", result.summary())

    def test_test_connection_reports_failure(self):
        with patch.object(SynapseServerlessConnector, "connect", side_effect=RuntimeError("Login failed")):
            ok, msg = self.connector.test_connection(self.config)
        self.assertFalse(ok)
        self.assertIn("Login failed", msg)

    def test_connection_closed_on_error(self):
        conn, cursor = _fake_connection([])
        cursor.execute.side_effect = RuntimeError("boom")
        with patch.object(SynapseServerlessConnector, "connect", return_value=conn):
            with self.assertRaises(RuntimeError):
                self.connector.pull_catalog(self.config, language_code=1033)
        conn.close.assert_called_once()


class TestCatalogResult(unittest.TestCase):
    def test_round_trip_dict(self):
        catalog = CatalogResult(
            columns=[{"table_schema": "dbo", "table_name": "a", "column_name": "x", "ordinal_position": 1, "data_type": "int"}],
            states=[{"entity_name": "a", "language_code": 1033}],
        )
        self.assertEqual(catalog.to_dict(), CatalogResult.from_dict(catalog.to_dict()).to_dict())

    def test_rows_must_be_objects(self):
        with self.assertRaises(ValueError):
            CatalogResult.from_dict({"columns": ["account"]})


if __name__ == "__main__":
    unittest.main()
