"""Tests for the content-addressed artifact store."""

import asyncio
import hashlib
import os

import blake3
import pytest

from ffpack.download import ArtifactStore, FileVerifier
from ffpack.exceptions import DigestMismatch, EntryNotFound
from ffpack.models import Digest

from tests.factories import sha1


async def chunks_of(data: bytes, size: int = 7):
    for start in range(0, len(data), size):
        yield data[start : start + size]
        await asyncio.sleep(0)


class TestPut:
    def test_put_and_read(self, store):
        data = b"fabric-api" * 100
        digest = sha1(data)

        entry = asyncio.run(store.put(chunks_of(data), digest, len(data)))

        assert store.has(digest)
        assert entry.size == len(data)
        assert entry.path == store.path_for(digest)
        assert entry.path.endswith(os.path.join("sha1", digest.value[:2], digest.value))
        with store.open(digest) as f:
            assert f.read() == data

    def test_mismatch_is_never_committed(self, store):
        data = b"tampered bytes"
        digest = sha1(b"original bytes")

        with pytest.raises(DigestMismatch) as excinfo:
            asyncio.run(store.put(chunks_of(data), digest))

        assert not store.has(digest)
        assert excinfo.value.context["expected"] == str(digest)
        assert excinfo.value.context["actual"] == str(sha1(data))
        assert os.listdir(store.tmp_dir) == []

    def test_size_mismatch(self, store):
        data = b"0123456789"
        with pytest.raises(DigestMismatch):
            asyncio.run(store.put(chunks_of(data), sha1(data), size=5))
        with pytest.raises(DigestMismatch):
            asyncio.run(store.put(chunks_of(data), sha1(data), size=50))
        assert not store.has(sha1(data))

    def test_sha512(self, store):
        data = b"shader pack"
        digest = Digest("sha512", hashlib.sha512(data).hexdigest())

        asyncio.run(store.put(chunks_of(data), digest))
        assert store.has(digest)
        assert not store.has(sha1(data))

    def test_concurrent_put_same_digest(self, store):
        data = b"x" * 4096
        digest = sha1(data)

        async def both():
            return await asyncio.gather(
                store.put(chunks_of(data, 64), digest),
                store.put(chunks_of(data, 100), digest),
            )

        first, second = asyncio.run(both())

        assert first.path == second.path
        assert first.digest == second.digest == digest
        assert [e.digest for e in store.iter_entries()] == [digest]
        assert os.listdir(store.tmp_dir) == []

    def test_cancelled_put_leaves_nothing(self, store):
        data = b"y" * 1024
        digest = sha1(data)

        async def slow():
            for start in range(0, len(data), 16):
                yield data[start : start + 16]
                await asyncio.sleep(0.01)

        async def run():
            task = asyncio.create_task(store.put(slow(), digest))
            await asyncio.sleep(0.02)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert not store.has(digest)
        assert os.listdir(store.tmp_dir) == []


class TestEntries:
    def test_entry_not_found(self, store):
        missing = sha1(b"missing")
        with pytest.raises(EntryNotFound):
            store.entry(missing)
        with pytest.raises(EntryNotFound):
            store.open(missing)

    def test_verify_and_evict(self, store):
        data = b"will be corrupted"
        digest = sha1(data)
        entry = asyncio.run(store.put(chunks_of(data), digest))
        assert asyncio.run(store.verify(digest))

        os.chmod(entry.path, 0o644)
        with open(entry.path, "wb") as f:
            f.write(b"corrupted")

        assert not asyncio.run(store.verify(digest))
        assert store.has(digest)
        assert not asyncio.run(store.verify(digest, evict=True))
        assert not store.has(digest)

    def test_iter_entries_sorted(self, store):
        blobs = [b"one", b"two", b"three"]
        for blob in blobs:
            asyncio.run(store.put(chunks_of(blob), sha1(blob)))

        values = [e.digest.value for e in store.iter_entries()]
        assert values == sorted(values)
        assert len(values) == 3

    def test_reopen_same_root(self, store):
        data = b"persisted"
        asyncio.run(store.put(chunks_of(data), sha1(data)))

        again = ArtifactStore(store.root)
        assert again.has(sha1(data))


class TestFileVerifier:
    def test_calc_digest(self, tmp_path):
        path = tmp_path / "file.bin"
        path.write_bytes(b"abc")

        assert asyncio.run(FileVerifier.calc_digest(str(path))) == hashlib.sha1(b"abc").hexdigest()
        assert asyncio.run(FileVerifier.verify(str(path), sha1(b"abc")))
        assert asyncio.run(FileVerifier.calc_digest(str(tmp_path / "nope"))) is None

    def test_blake3(self, tmp_path):
        path = tmp_path / "file.bin"
        path.write_bytes(b"abc")
        expected = Digest("blake3", blake3.blake3(b"abc").hexdigest())

        assert asyncio.run(FileVerifier.verify(str(path), expected))
        assert not asyncio.run(FileVerifier.verify(str(path), Digest("blake3", "0" * 64)))


class TestBlake3Store:
    def test_put_verifies_blake3(self, store):
        data = b"my awesome mod" * 50
        digest = Digest("blake3", blake3.blake3(data).hexdigest())

        entry = asyncio.run(store.put(chunks_of(data), digest, len(data)))

        assert entry.path.endswith(os.path.join("blake3", digest.value[:2], digest.value))
        assert asyncio.run(store.verify(digest))
        assert [e.digest for e in store.iter_entries()] == [digest]

    def test_blake3_mismatch(self, store):
        digest = Digest("blake3", blake3.blake3(b"expected").hexdigest())

        with pytest.raises(DigestMismatch):
            asyncio.run(store.put(chunks_of(b"something else"), digest))
        assert not store.has(digest)
