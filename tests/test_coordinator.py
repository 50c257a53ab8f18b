"""Tests for coordinator.py - metadata loading and the concurrent run."""

from unittest.mock import MagicMock

import pymysql
import pytest

from conftest import CATALOG, FakeConnection, FakeConnector, make_table
from scanbench.coordinator import RunCoordinator, columns_from_catalog, fetch_columns
from scanbench.dispatch import DEFAULT_STRATEGIES, ColumnTypeDispatcher, decode_string
from scanbench.errors import ConfigError, MetadataError
from scanbench.models import Partition, TypeTag
from scanbench.pool import ConnectionPool


def coordinator_for(connector, workers):
    pool = ConnectionPool(connector, max_size=workers + 1)
    return RunCoordinator(pool, "bench", "test1")


class TestColumnMetadata:
    def test_single_primary_key_is_row_identifier(self):
        columns = columns_from_catalog(CATALOG)
        assert [c.name for c in columns] == ["id", "name", "amount", "qty", "created", "payload"]
        assert [c.position for c in columns] == [1, 2, 3, 4, 5, 6]
        assert columns[0].type_tag is TypeTag.ROW_ID
        assert columns[3].type_tag is TypeTag.INTEGER

    def test_composite_key_has_no_row_identifier(self):
        catalog = [
            {"column_name": "a", "data_type": "int", "column_key": "PRI"},
            {"column_name": "b", "data_type": "int", "column_key": "PRI"},
        ]
        assert all(c.type_tag is TypeTag.INTEGER for c in columns_from_catalog(catalog))

    def test_fetch_columns_reads_catalog(self):
        conn = FakeConnection(make_table(1))
        columns = fetch_columns(conn, "bench", "test1")
        assert len(columns) == len(CATALOG)
        sql, params = conn.executed[0]
        assert "information_schema.columns" in sql
        assert params == ("bench", "test1")

    def test_missing_table_is_metadata_error(self):
        conn = FakeConnection(make_table(1))
        conn.table.catalog = []
        with pytest.raises(MetadataError, match="no columns"):
            fetch_columns(conn, "bench", "missing")

    def test_query_error_is_metadata_error(self):
        conn = FakeConnection(make_table(1), fail_on=lambda sql, params: True)
        with pytest.raises(MetadataError, match="Unable to read columns"):
            fetch_columns(conn, "bench", "test1")


class TestRun:
    def test_two_workers_cover_every_row(self):
        connector = FakeConnector(make_table(40))
        summary = coordinator_for(connector, 2).run(40, 2)

        assert summary.ok
        assert summary.rows == 40
        assert summary.decode_failures == {}
        assert [o.partition for o in summary.outcomes] == [Partition(1, 20), Partition(21, 20)]
        scanned = sorted(params for conn in connector.opened for _, params in conn.executed if params[0] != "bench")
        assert scanned == [(1, 21), (21, 41)]

    def test_uneven_split_scans_the_tail(self):
        summary = coordinator_for(FakeConnector(make_table(10)), 3).run(10, 3)
        assert summary.ok
        assert summary.rows == 10
        assert len(summary.outcomes) == 4

    def test_failing_partition_does_not_stop_the_others(self):
        connector = FakeConnector(make_table(40), fail_on=lambda sql, params: params[0] == 11)
        summary = coordinator_for(connector, 4).run(40, 4)

        assert not summary.ok
        assert [o.partition.label for o in summary.fatal_partitions] == ["11-21"]
        assert summary.rows == 30
        assert [o.rows for o in summary.outcomes] == [10, 0, 10, 10]

    def test_refused_connection_fails_only_its_partition(self):
        # the first open always happens: no connection is idle yet
        connector = FakeConnector(make_table(40), fail_opens={1})
        metadata_conn = FakeConnection(make_table(40))
        summary = coordinator_for(connector, 4).run(40, 4, metadata_conn=metadata_conn)

        assert len(summary.fatal_partitions) == 1
        fatal = summary.fatal_partitions[0]
        assert "Can't connect" in fatal.fatal
        assert fatal.rows == 0
        completed = [o for o in summary.outcomes if not o.failed]
        assert len(completed) == 3
        assert all(o.rows == 10 and not o.decode_failures for o in completed)
        assert summary.rows == 30

    def test_crashing_task_becomes_a_fatal_outcome(self, caplog):
        def explode_on_row_15(raw):
            if raw == "row15col1":
                raise KeyError("boom")
            return decode_string(raw)

        strategies = dict(DEFAULT_STRATEGIES)
        strategies[TypeTag.STRING] = explode_on_row_15
        pool = ConnectionPool(FakeConnector(make_table(40)), max_size=5)
        coordinator = RunCoordinator(pool, "bench", "test1", dispatcher=ColumnTypeDispatcher(strategies))
        summary = coordinator.run(40, 4)

        assert [o.partition.label for o in summary.fatal_partitions] == ["11-21"]
        crashed = summary.fatal_partitions[0]
        assert crashed.fatal == "crashed: KeyError('boom')"
        assert crashed.worker.startswith("processor")
        assert crashed.elapsed >= 0
        assert crashed.rows == 0
        assert [o.rows for o in summary.outcomes] == [10, 0, 10, 10]
        assert pool.in_use == 0
        assert any("crashed" in r.getMessage() for r in caplog.records)

    def test_uses_supplied_metadata_connection(self):
        connector = FakeConnector(make_table(40))
        metadata_conn = FakeConnection(make_table(40))
        summary = coordinator_for(connector, 2).run(40, 2, metadata_conn=metadata_conn)
        assert summary.ok
        assert len(metadata_conn.executed) == 1
        assert all("information_schema" not in sql for conn in connector.opened for sql, _ in conn.executed)

    def test_invalid_worker_count_fails_before_connecting(self):
        connector = MagicMock()
        with pytest.raises(ConfigError):
            coordinator_for(connector, 5).run(3, 5)
        connector.assert_not_called()

    def test_connection_failures_are_per_partition(self):
        connector = MagicMock(side_effect=pymysql.err.OperationalError(2003, "Can't connect"))
        metadata_conn = FakeConnection(make_table(40))
        summary = coordinator_for(connector, 2).run(40, 2, metadata_conn=metadata_conn)
        assert not summary.ok
        assert len(summary.fatal_partitions) == 2
        assert summary.rows == 0

    def test_metadata_connection_failure_aborts_the_run(self):
        connector = MagicMock(side_effect=pymysql.err.OperationalError(2003, "Can't connect"))
        with pytest.raises(MetadataError, match="No connection"):
            coordinator_for(connector, 2).run(40, 2)

    def test_small_pool_is_reported(self, caplog):
        pool = ConnectionPool(FakeConnector(make_table(40)), max_size=1)
        summary = RunCoordinator(pool, "bench", "test1").run(40, 2)
        assert summary.ok
        assert any("workers will queue" in r.getMessage() for r in caplog.records)
