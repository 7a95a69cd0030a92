import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from liteioc import ConstructionError, Container, Lifetime, ResolutionTimeoutError, ServiceNotFoundError
from liteioc._lifecycle import MISSING, Evicted, LifecycleManager


N_THREADS = 16


def test_concurrent_resolution_constructs_singleton_exactly_once():
    c = Container()
    counter = {"calls": 0}
    counter_lock = threading.Lock()
    barrier = threading.Barrier(N_THREADS)

    def slow_factory():
        with counter_lock:
            counter["calls"] += 1
        time.sleep(0.05)
        return object()

    c.register("shared", slow_factory)

    def worker():
        barrier.wait()
        return c.resolve("shared")

    with ThreadPoolExecutor(max_workers=N_THREADS) as pool:
        results = list(pool.map(lambda _: worker(), range(N_THREADS)))

    assert counter["calls"] == 1
    assert all(r is results[0] for r in results)


def test_concurrent_transient_resolution_builds_one_instance_per_call():
    c = Container()
    c.register("t", object, lifetime=Lifetime.TRANSIENT)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: c.resolve("t"), range(32)))

    assert len({id(r) for r in results}) == 32


def test_independent_threads_do_not_share_resolution_context():
    c = Container()
    started = threading.Event()
    release = threading.Event()

    def blocking():
        started.set()
        release.wait(5)
        return "blocked"

    c.register("a", blocking, lifetime=Lifetime.TRANSIENT)

    with ThreadPoolExecutor(max_workers=2) as pool:
        first = pool.submit(c.resolve, "a")
        started.wait(5)
        # "a" is in progress on the other thread; this is not a cycle
        second = pool.submit(c.resolve, "a")
        release.set()
        assert first.result(5) == "blocked"
        assert second.result(5) == "blocked"


def test_waiters_retry_after_owner_failure():
    c = Container()
    attempts = []
    attempts_lock = threading.Lock()
    owner_started = threading.Event()
    waiter_ready = threading.Event()

    def factory():
        with attempts_lock:
            attempts.append(1)
            first = len(attempts) == 1
        if first:
            owner_started.set()
            waiter_ready.wait(5)
            time.sleep(0.05)
            msg = "first build fails"
            raise RuntimeError(msg)
        return "ok"

    c.register("s", factory)

    with ThreadPoolExecutor(max_workers=2) as pool:
        owner = pool.submit(c.resolve, "s")
        owner_started.wait(5)
        waiter = pool.submit(c.resolve, "s")
        waiter_ready.set()

        with pytest.raises(ConstructionError):
            owner.result(5)
        assert waiter.result(5) == "ok"

    assert len(attempts) == 2
    assert c.resolve("s") == "ok"


def test_timed_out_waiter_does_not_construct():
    c = Container()
    calls = []
    release = threading.Event()
    started = threading.Event()

    def slow():
        calls.append(1)
        started.set()
        release.wait(5)
        return "value"

    c.register("slow", slow)

    with ThreadPoolExecutor(max_workers=1) as pool:
        owner = pool.submit(c.resolve, "slow")
        started.wait(5)

        with pytest.raises(ResolutionTimeoutError) as ctx:
            c.resolve("slow", timeout=0.05)
        assert ctx.value.name == "slow"
        assert ctx.value.timeout == 0.05
        assert isinstance(ctx.value, TimeoutError)

        release.set()
        assert owner.result(5) == "value"

    assert c.resolve("slow") == "value"
    assert len(calls) == 1


def test_lifecycle_manager_get_cached_miss_and_hit():
    manager = LifecycleManager()
    assert manager.get_cached("x") is MISSING

    instance = manager.construct("x", Lifetime.SINGLETON, object)
    assert manager.get_cached("x") is instance
    assert len(manager) == 1


def test_lifecycle_manager_transient_never_touches_cache():
    manager = LifecycleManager()

    a = manager.construct("x", Lifetime.TRANSIENT, object)
    b = manager.construct("x", Lifetime.TRANSIENT, object)

    assert a is not b
    assert manager.get_cached("x") is MISSING


def test_lifecycle_manager_drain_returns_owned_instances_newest_first():
    manager = LifecycleManager()
    first = manager.construct("first", Lifetime.SINGLETON, object)
    manager.construct("borrowed", Lifetime.SINGLETON, object, owned=False)
    second = manager.construct("second", Lifetime.SINGLETON, object)

    assert manager.drain() == [("second", second), ("first", first)]
    assert len(manager) == 0


def _start_blocked_build(c, name, started, gate):
    """Start resolving `name` on one thread and a second resolve that waits on it."""
    pool = ThreadPoolExecutor(max_workers=2)
    owner = pool.submit(c.resolve, name)
    assert started.wait(5)
    waiter = pool.submit(c.resolve, name)
    time.sleep(0.05)  # let the waiter join the in-flight construction
    return pool, owner, waiter


def test_replace_during_construction_caches_the_new_registration():
    c = Container()
    old_calls = []
    started = threading.Event()
    gate = threading.Event()

    class Old: ...

    class New: ...

    def build_old():
        old_calls.append("old")
        started.set()
        gate.wait(5)
        return Old()

    c.register("s", build_old)
    pool, owner, waiter = _start_blocked_build(c, "s", started, gate)
    with pool:
        c.register("s", New, replace=True)
        gate.set()

        assert isinstance(owner.result(5), Old)
        assert isinstance(waiter.result(5), New)

    assert old_calls == ["old"]
    assert isinstance(c.resolve("s"), New)
    assert c.resolve("s") is waiter.result()


def test_unregister_during_construction_caches_nothing():
    c = Container()
    calls = []
    started = threading.Event()
    gate = threading.Event()

    def build():
        calls.append(1)
        started.set()
        gate.wait(5)
        return object()

    c.register("s", build)
    pool, owner, waiter = _start_blocked_build(c, "s", started, gate)
    with pool:
        c.unregister("s")
        gate.set()

        owner.result(5)
        with pytest.raises(ServiceNotFoundError) as ctx:
            waiter.result(5)
        assert ctx.value.name == "s"

    assert calls == [1]
    assert c._lifecycle.get_cached("s") is MISSING
    assert c._lifecycle.drain() == []


def test_lifecycle_manager_waiter_on_evicted_claim_does_not_build():
    manager = LifecycleManager()
    started = threading.Event()
    gate = threading.Event()
    waiter_builds = []

    def owner_build():
        started.set()
        gate.wait(5)
        return "owner"

    with ThreadPoolExecutor(max_workers=2) as pool:
        owner = pool.submit(manager.construct, "x", Lifetime.SINGLETON, owner_build)
        assert started.wait(5)
        waiter = pool.submit(manager.construct, "x", Lifetime.SINGLETON, lambda: waiter_builds.append(1))
        time.sleep(0.05)

        manager.evict("x")
        with pytest.raises(Evicted):
            waiter.result(5)

        gate.set()
        assert owner.result(5) == "owner"

    assert waiter_builds == []
    assert manager.get_cached("x") is MISSING
