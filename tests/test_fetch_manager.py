"""Tests for the bounded, retrying fetch manager."""

import asyncio

import pytest

from ffpack.download import FetchManager, FetchRequest
from ffpack.exceptions import DigestMismatch, DownloadError, DownloadNetworkError, PartialFailureReport
from ffpack.models import ModRef, ProjectType, ResolutionGraph

from tests.factories import PLATFORM, FakeTransport, candidate, payload


def graph_of(*candidates):
    return ResolutionGraph(
        platform=PLATFORM,
        selections={c.ref: c for c in candidates},
        roots=tuple(c.ref for c in candidates),
    )


def manager_for(store, transport, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return FetchManager(store, transport, **kwargs)


class TestFetchAll:
    def test_fetches_every_artifact(self, store):
        mods = [candidate(f"mod{i}", "1.0") for i in range(5)]
        transport = FakeTransport.serving(*mods)
        manager = manager_for(store, transport)

        entries = asyncio.run(manager.fetch_all(graph_of(*mods)))

        assert set(entries) == {m.ref for m in mods}
        for mod in mods:
            with store.open(mod.digest) as f:
                assert f.read() == payload(mod.ref.id, mod.version)
        assert manager.stats.completed == 5
        assert manager.stats.bytes_downloaded == sum(m.download.size for m in mods)

    def test_cache_hit_skips_network(self, store):
        mod = candidate("sodium", "0.5.3")
        transport = FakeTransport.serving(mod)
        asyncio.run(manager_for(store, transport).fetch_all(graph_of(mod)))

        second = manager_for(store, transport)
        entries = asyncio.run(second.fetch_all(graph_of(mod)))

        assert transport.calls[mod.download.url] == 1
        assert second.stats.skipped == 1
        assert entries[mod.ref].digest == mod.digest

    def test_transient_failure_retried(self, store):
        mod = candidate("lithium", "0.11")
        transport = FakeTransport.serving(
            mod,
            failures={
                mod.download.url: [
                    DownloadNetworkError("HTTP 503"),
                    DownloadNetworkError("connection reset"),
                ]
            },
        )
        manager = manager_for(store, transport, max_retries=3)

        entries = asyncio.run(manager.fetch_all(graph_of(mod)))

        assert mod.ref in entries
        assert transport.calls[mod.download.url] == 3

    def test_retry_budget_exhausted(self, store):
        mod = candidate("lithium", "0.11")
        transport = FakeTransport.serving(
            mod, failures={mod.download.url: [DownloadNetworkError("HTTP 503")] * 5}
        )

        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(manager_for(store, transport, max_retries=2).fetch_all(graph_of(mod)))

        assert transport.calls[mod.download.url] == 3
        ref, error = excinfo.value.failures[0]
        assert ref == mod.ref
        assert isinstance(error, DownloadNetworkError)

    def test_digest_mismatch_not_retried(self, store):
        mod = candidate("iris", "1.6")
        transport = FakeTransport({mod.download.url: b"something else entirely"})

        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(manager_for(store, transport).fetch_all(graph_of(mod)))

        assert transport.calls[mod.download.url] == 1
        assert isinstance(excinfo.value.failures[0][1], DigestMismatch)
        assert not store.has(mod.digest)

    def test_timeout_is_transient(self, store):
        mod = candidate("slow", "1.0")
        transport = FakeTransport.serving(mod, delay=0.5)

        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(
                manager_for(store, transport, timeout=0.05, max_retries=1).fetch_all(
                    graph_of(mod)
                )
            )

        assert transport.calls[mod.download.url] == 2
        assert isinstance(excinfo.value.failures[0][1], DownloadNetworkError)
        assert not store.has(mod.digest)


class TestFailurePolicy:
    def test_fail_fast_cancels_in_flight(self, store):
        broken = candidate("aaa-broken", "1.0")
        slow = [candidate(f"slow{i}", "1.0") for i in range(4)]
        # the broken artifact fails immediately with a permanent 404
        transport = FakeTransport.serving(
            *slow,
            delay=0.3,
            failures={broken.download.url: [DownloadError("HTTP 404")]},
        )

        manager = manager_for(store, transport, max_concurrent=2, fail_fast=True)
        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(manager.fetch_all(graph_of(broken, *slow)))

        failed = {ref for ref, _ in excinfo.value.failures}
        assert failed == {broken.ref, *(m.ref for m in slow)}
        assert not any(store.has(m.digest) for m in slow)
        assert excinfo.value.code == "E510"

    def test_without_fail_fast_everything_else_completes(self, store):
        broken = candidate("broken", "1.0")
        good = [candidate(f"good{i}", "1.0") for i in range(3)]
        transport = FakeTransport.serving(*good)

        manager = manager_for(store, transport, fail_fast=False)
        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(manager.fetch_all(graph_of(broken, *good)))

        assert [ref for ref, _ in excinfo.value.failures] == [broken.ref]
        assert all(store.has(m.digest) for m in good)

    def test_failures_sorted_by_ref(self, store):
        mods = [candidate(name, "1.0") for name in ("zeta", "alpha", "mid")]
        manager = manager_for(store, FakeTransport(), fail_fast=False)

        with pytest.raises(PartialFailureReport) as excinfo:
            asyncio.run(manager.fetch_all(graph_of(*mods)))

        assert [ref.id for ref, _ in excinfo.value.failures] == ["alpha", "mid", "zeta"]


class TestConcurrency:
    def test_bounded_concurrency(self, store):
        mods = [candidate(f"mod{i}", "1.0") for i in range(8)]
        transport = FakeTransport.serving(*mods, delay=0.02)

        asyncio.run(manager_for(store, transport, max_concurrent=3).fetch_all(graph_of(*mods)))

        assert transport.max_active <= 3
        assert transport.max_active > 1

    def test_same_digest_fetched_once(self, store):
        data = b"shared library bytes"
        first = candidate("lib-a", "1.0", data=data)
        second = candidate("lib-b", "1.0", data=data)
        transport = FakeTransport({first.download.url: data, second.download.url: data})

        entries = asyncio.run(
            manager_for(store, transport).fetch_all(
                [FetchRequest(first.ref, first.download), FetchRequest(second.ref, second.download)]
            )
        )

        assert sum(transport.calls.values()) == 1
        assert entries[first.ref] == entries[second.ref]

    def test_roots_first_packs_last(self, store):
        pack = candidate("aaa-pack", "1.0", project_type=ProjectType.RESOURCE_PACK)
        library = candidate("bbb-library", "1.0")
        root_mod = candidate("zzz-root", "1.0")
        graph = ResolutionGraph(
            platform=PLATFORM,
            selections={c.ref: c for c in (pack, library, root_mod)},
            roots=(root_mod.ref, pack.ref),
        )
        transport = FakeTransport.serving(pack, library, root_mod)

        asyncio.run(manager_for(store, transport, max_concurrent=1).fetch_all(graph))

        assert list(transport.calls) == [
            root_mod.download.url,
            library.download.url,
            pack.download.url,
        ]

    def test_invalid_concurrency(self, store):
        with pytest.raises(ValueError):
            FetchManager(store, FakeTransport(), max_concurrent=0)

    def test_empty_graph(self, store):
        assert asyncio.run(manager_for(store, FakeTransport()).fetch_all([])) == {}

    def test_unknown_ref_lookup(self, store):
        mod = candidate("sodium", "1.0")
        entries = asyncio.run(
            manager_for(store, FakeTransport.serving(mod)).fetch_all(graph_of(mod))
        )
        assert ModRef("test", "other") not in entries
