"""
Unit tests for the routing connection pool.

Owners are plain strings unless a test needs a weakly referenceable one.
"""

import gc
import threading
from unittest.mock import patch

import pytest

from sqlroute.config import DatasourceConfig, PoolConfig
from sqlroute.database.connection import ConnectionHandle
from sqlroute.database.datasource import DriverRoutingDataSource
from sqlroute.database.pool import PoolStatus, PoolUsage, RoutingConnectionPool
from sqlroute.exceptions import ConfigurationError, ConnectivityError, ConsistencyViolation


class _Transaction:
    """Weakly referenceable owner token."""


class _CountingLock:
    """Segment lock wrapper that counts how often it is entered."""

    def __init__(self):
        self._lock = threading.RLock()
        self.entered = 0

    def __enter__(self):
        self.entered += 1
        return self._lock.__enter__()

    def __exit__(self, *exc_info):
        return self._lock.__exit__(*exc_info)


class TestAcquireRelease:
    """Test owner-routed acquire and release."""

    def test_first_acquire_opens_connection(self, pool, datasource):
        """Test a new owner gets an open handle with one claim."""
        handle = pool.acquire("tx-1")

        assert handle.is_open
        assert handle.usage_count == 1
        assert handle.datasource_key == "main"
        assert len(datasource.opened) == 1

    def test_nested_acquire_reuses_handle(self, pool, datasource):
        """Test reentrant acquisition by the same owner."""
        first = pool.acquire("tx-1")
        second = pool.acquire("tx-1")
        third = pool.acquire("tx-1")

        assert first is second is third
        assert first.usage_count == 3
        assert len(datasource.opened) == 1

    @pytest.mark.parametrize("depth", [1, 2, 5, 10])
    def test_physical_close_after_matching_releases(self, pool, datasource, depth):
        """Test the physical connection is opened once and closed once."""
        handles = [pool.acquire("tx") for _ in range(depth)]

        for handle in handles[:-1]:
            pool.release(handle)
            assert datasource.closed == []
            assert handle.is_open

        pool.release(handles[-1])

        assert datasource.opened == datasource.closed
        assert len(datasource.closed) == 1
        assert handles[0].is_closed
        assert pool.get_status().active == 0

    def test_interleaved_acquire_release(self, pool, datasource):
        """Test interleaving never reopens while a claim is outstanding."""
        a = pool.acquire("tx")
        b = pool.acquire("tx")
        pool.release(b)
        c = pool.acquire("tx")
        pool.release(c)
        pool.release(a)

        assert len(datasource.opened) == 1
        assert len(datasource.closed) == 1

    def test_default_owner_is_current_thread(self, pool):
        """Test acquire without owner keys on the calling thread."""
        handle = pool.acquire()

        assert handle.owner is threading.current_thread()
        assert pool.acquire() is handle

    def test_distinct_owners_get_distinct_handles(self, pool, datasource):
        """Test two owners never share a handle."""
        h1 = pool.acquire("tx-1")
        h2 = pool.acquire("tx-2")

        assert h1 is not h2
        assert len(datasource.opened) == 2

    def test_release_does_not_affect_other_owner(self, pool):
        """Test releasing one owner leaves the other's count alone."""
        h1 = pool.acquire("tx-1")
        h2 = pool.acquire("tx-2")
        pool.acquire("tx-2")

        pool.release(h1)

        assert h1.is_closed
        assert h2.is_open
        assert h2.usage_count == 2

    def test_concurrent_owners_get_distinct_handles(self, pool):
        """Test threads acquiring at the same time each get their own handle."""
        workers = 8
        barrier = threading.Barrier(workers)
        handles = {}
        errors = []

        def work(index):
            try:
                handle = pool.acquire()
                assert pool.acquire() is handle
                barrier.wait(timeout=5)
                handles[index] = handle
                pool.release(handle)
                pool.release(handle)
            except Exception as e:  # surfaced below
                errors.append(e)

        threads = [threading.Thread(target=work, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len({id(h) for h in handles.values()}) == workers
        assert all(h.is_closed for h in handles.values())
        assert pool.get_status().active == 0

    def test_release_none_is_noop(self, pool):
        """Test releasing None does nothing."""
        pool.release(None)

    def test_release_without_mapping_is_noop(self, pool, datasource):
        """Test releasing a handle whose owner has no mapping."""
        stray = ConnectionHandle(datasource, "main")
        stray.ensure_open()
        stray.add_used_by_object("ghost")

        pool.release(stray)

        assert stray.is_closed

    def test_release_after_shutdown_is_noop(self, pool):
        """Test a release that finds the mapping already gone."""
        handle = pool.acquire("tx")
        pool.shutdown()

        pool.release(handle)

    def test_extra_release_is_noop(self, pool, datasource):
        """Test releasing more often than acquiring."""
        handle = pool.acquire("tx")
        pool.release(handle)
        pool.release(handle)

        assert len(datasource.closed) == 1

    def test_mismatched_handle_raises(self, pool, datasource):
        """Test releasing a handle other than the registered one."""
        registered = pool.acquire("tx")
        stray = ConnectionHandle(datasource, "main")
        stray.ensure_open()
        stray.add_used_by_object("tx")

        with pytest.raises(ConsistencyViolation) as exc_info:
            pool.release(stray)

        assert exc_info.value.owner == "tx"
        assert exc_info.value.expected is registered
        assert registered.is_open
        assert pool.acquire("tx") is registered

    def test_acquire_failure_propagates(self, pool, datasource):
        """Test connectivity errors reach the caller unchanged."""
        datasource.fail = True

        with pytest.raises(ConnectivityError, match="connection refused"):
            pool.acquire("tx")

        assert pool.get_status().active == 0

    def test_acquire_routes_to_named_datasource(self, multi_datasource):
        """Test a new handle is bound to the requested datasource."""
        pool = RoutingConnectionPool(multi_datasource)

        handle = pool.acquire("tx", datasource_key="reports")
        raw_orders = handle.connection("orders")

        assert handle.datasource_key == "reports"
        assert raw_orders.datasource_key == "orders"
        assert len(multi_datasource.opened) == 2

        pool.release(handle)
        assert len(multi_datasource.closed) == 2

    def test_acquire_without_default_datasource_fails(self, multi_datasource):
        """Test acquire needs a datasource key when there is no default."""
        pool = RoutingConnectionPool(multi_datasource)

        with pytest.raises(ConfigurationError, match="No default datasource"):
            pool.acquire("tx")


class TestOwnerLifecycle:
    """Test owner registration and deregistration."""

    def test_connection_context_manager(self, pool, datasource):
        """Test the with-block form releases on exit."""
        with pool.connection("tx") as handle:
            assert handle.is_open
            with pool.connection("tx") as inner:
                assert inner is handle
            assert handle.is_open

        assert handle.is_closed
        assert len(datasource.closed) == 1

    def test_connection_context_manager_releases_on_error(self, pool):
        """Test the with-block releases when the body raises."""
        with pytest.raises(RuntimeError):
            with pool.connection("tx") as handle:
                raise RuntimeError("boom")

        assert handle.is_closed
        assert pool.get_status().active == 0

    def test_deregister_closes_regardless_of_count(self, pool):
        """Test explicit owner completion."""
        handle = pool.acquire("tx")
        pool.acquire("tx")

        assert pool.deregister("tx") is True
        assert handle.is_closed
        assert pool.get_status().active == 0
        assert pool.deregister("tx") is False

    def test_collected_owner_closes_handle(self, pool, datasource):
        """Test a weakly held owner does not pin its handle."""
        owner = _Transaction()
        handle = pool.acquire(owner)
        assert pool.get_status().active == 1

        del owner
        gc.collect()

        assert handle.is_closed
        assert pool.get_status().active == 0
        assert datasource.closed == datasource.opened


class TestStatus:
    """Test pool status reporting."""

    def test_status_counts_owners(self, pool):
        """Test active and total track distinct owners."""
        handles = [pool.acquire(f"tx-{i}") for i in range(3)]
        pool.acquire("tx-0")

        assert pool.get_status() == PoolStatus(active=3, idle=0, total=3, peak=3, waiting=0)

        pool.release(handles[1])
        status = pool.get_status()

        assert status.active == status.total == 2
        assert status.peak == 3
        assert status.idle == status.waiting == 0

    def test_acquire_locks_only_its_own_segment(self, pool):
        """Test a new owner touches one segment, including the peak update."""
        locks = []
        for segment in pool._owners._segments:
            segment.lock = _CountingLock()
            locks.append(segment.lock)

        pool.acquire("tx-1")
        pool.get_status()

        touched = [lock for lock in locks if lock.entered]
        assert len(touched) == 1
        assert pool.get_status().peak == 1

    def test_empty_pool_status(self, pool):
        """Test status of an unused pool."""
        assert pool.get_status() == PoolStatus(0, 0, 0, 0, 0)

    def test_routing_flags(self, pool):
        """Test the pool identifies as a routing pool without idle capacity."""
        assert pool.is_routing
        assert pool.is_dummy


class TestShutdown:
    """Test pool teardown."""

    def test_shutdown_closes_every_handle(self, pool, datasource):
        """Test shutdown closes handles and clears owners."""
        h1 = pool.acquire("tx-1")
        h2 = pool.acquire("tx-2")
        pool.acquire("tx-2")

        pool.shutdown()

        assert h1.is_closed and h2.is_closed
        assert pool.get_status().active == 0
        assert len(datasource.closed) == 2

    def test_shutdown_reports_usage(self, pool):
        """Test cumulative counters are returned and reset."""
        handle = pool.acquire("tx")
        pool.acquire("tx")
        pool.release(handle)

        usage = pool.shutdown()

        assert usage == PoolUsage(acquired=2, released=1)

    def test_shutdown_continues_past_failures(self, pool):
        """Test a failing handle does not stop the others from closing."""
        h1 = pool.acquire("tx-1")
        h2 = pool.acquire("tx-2")

        with patch.object(h1, "close_physical", side_effect=RuntimeError("stuck")):
            pool.shutdown()

        assert h2.is_closed

    def test_shutdown_closes_metadata(self, pool):
        """Test cached metadata objects are torn down."""
        metadata = pool.get_or_create_metadata()

        with patch.object(metadata, "close", wraps=metadata.close) as close:
            pool.shutdown()

        close.assert_called_once()
        assert metadata.pool.is_closed

    def test_context_manager_shuts_down(self, datasource):
        """Test the pool as a context manager."""
        with RoutingConnectionPool(datasource) as pool:
            handle = pool.acquire("tx")

        assert handle.is_closed


class TestMetadataAccess:
    """Test metadata resolution through the pool."""

    def test_null_key_without_default_fails(self, multi_datasource):
        """Test None cannot be resolved without a default datasource."""
        pool = RoutingConnectionPool(multi_datasource)

        with pytest.raises(ConfigurationError, match="No default datasource"):
            pool.get_or_create_metadata(None)

    def test_null_key_with_single_datasource(self):
        """Test the only configured datasource is the default."""
        datasource = DriverRoutingDataSource(
            [DatasourceConfig(name="only", driver="sqlite3", dsn=":memory:")]
        )
        pool = RoutingConnectionPool(datasource)

        metadata = pool.get_or_create_metadata(None)

        assert metadata.datasource_key == "only"
        assert metadata.profile.name == "sqlite"
        assert pool.get_metadata("only") is metadata
        pool.shutdown()

    def test_metadata_is_cached(self, pool):
        """Test repeated lookups return one object."""
        assert pool.get_or_create_metadata("main") is pool.get_or_create_metadata()

    def test_concurrent_first_access_shares_metadata(self, datasource):
        """Test N threads asking at once share one metadata object."""
        pool = RoutingConnectionPool(datasource)
        workers = 10
        barrier = threading.Barrier(workers)
        results = []

        def work():
            barrier.wait(timeout=5)
            results.append(pool.get_or_create_metadata("main"))

        threads = [threading.Thread(target=work) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == workers
        assert all(r is results[0] for r in results)

    def test_profile_and_info(self, multi_datasource):
        """Test dialect and connect info lookups."""
        pool = RoutingConnectionPool(multi_datasource)

        assert pool.get_profile("orders").name == "postgresql"
        assert pool.get_info("reports").dialect == "sqlite"
        assert pool.datasource_names() == ["orders", "reports"]

    def test_close_connection_till_min_forwarded(self, pool):
        """Test trimming is forwarded to every metadata object."""
        metadata = pool.get_or_create_metadata()

        with patch.object(metadata, "close_connection_till_min") as trim:
            pool.close_connection_till_min()

        trim.assert_called_once()

    def test_has_remark_feature(self, multi_datasource):
        """Test remark support follows the dialect."""
        pool = RoutingConnectionPool(multi_datasource)

        assert pool.has_remark_feature("orders") is True
        assert pool.has_remark_feature("reports") is False

        pool.get_or_create_metadata("orders")
        assert pool.has_remark_feature("orders") is True

    def test_has_remark_feature_disabled_by_config(self, multi_datasource):
        """Test the configuration switch turns remark fetching off."""
        pool = RoutingConnectionPool(multi_datasource, PoolConfig(no_remark_connection=True))

        assert pool.has_remark_feature("orders") is False


class TestPassThrough:
    """Test one-shot connections outside owner routing."""

    def test_cached_connection_is_always_fresh(self, pool, datasource):
        """Test the pool never caches one-shot connections."""
        first = pool.get_cached_connection("main")
        second = pool.get_cached_connection("main")

        assert first is not second
        assert len(datasource.opened) == 2

    def test_putback_closes(self, pool, datasource):
        """Test putback physically closes."""
        conn = pool.get_cached_connection("main")

        pool.putback("main", conn)

        assert datasource.closed == [conn]

    def test_putback_swallows_close_errors(self, pool, datasource):
        """Test putback is best effort."""
        conn = pool.get_cached_connection("main")

        with patch.object(datasource, "close_connection", side_effect=RuntimeError("gone")):
            pool.putback("main", conn)

    def test_register_init_callback(self, pool, datasource):
        """Test init callbacks are handed to the datasource."""
        callback = lambda key, conn: None

        pool.register_init_callback(callback)

        assert datasource.callback is callback

