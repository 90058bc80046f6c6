"""Tests for the lock file codec."""

import pytest

from ffpack.exceptions import CorruptLockFile, LockFileError
from ffpack.lockfile import LockFile, LockedMod, decode, encode, read_lockfile, write_lockfile
from ffpack.models import ModRef, ProjectType, ResolutionGraph, Side

from tests.factories import PLATFORM, candidate, sha1

SHA1 = sha1(b"sodium")


def sample_lock():
    return LockFile(
        minecraft="1.20.1",
        loader="fabric",
        loader_version="0.15.3",
        mods=(
            LockedMod(
                provider="modrinth",
                id="AANobbMI",
                name="sodium",
                version="mc1.20.1-0.5.3",
                version_id="OihdIimA",
                digest=SHA1,
                url="https://cdn.modrinth.com/data/AANobbMI/versions/OihdIimA/sodium.jar",
                filename="sodium-fabric-mc1.20.1-0.5.3.jar",
                size=1024,
                side=Side.CLIENT,
                root=True,
            ),
            LockedMod(
                provider="url",
                id="tweaks",
                version="0",
                version_id="tweaks@0",
                digest=sha1(b"tweaks"),
                url="file:///tmp/tweaks.zip",
                filename="tweaks.zip",
                project_type=ProjectType.RESOURCE_PACK,
            ),
        ),
    )


class TestCodec:
    def test_round_trip(self):
        lock = sample_lock()
        assert decode(encode(lock)) == lock

    @pytest.mark.parametrize(
        "text",
        [
            "1.0\\x41",
            "x\x7fy",
            "back\\slash\\",
            'quote " inside',
            "tab\tnew\nline\r",
            "\x00\x01\x1f\b\f",
            "'''",
            '"""',
            "\\u0041 \\U00000041",
            "éclair 中文 🎉",
            "# not a comment",
            "a = b",
        ],
    )
    def test_round_trip_free_form_strings(self, text):
        mod = sample_lock().mods[0]
        lock = LockFile(
            minecraft="1.20.1",
            loader="fabric",
            loader_version=text,
            mods=(
                LockedMod(
                    provider=mod.provider,
                    id=mod.id,
                    name=text,
                    version=text,
                    version_id=mod.version_id,
                    digest=mod.digest,
                    url=mod.url,
                    filename=text,
                    size=mod.size,
                ),
            ),
        )

        assert decode(encode(lock)) == lock

    def test_round_trip_empty(self):
        lock = LockFile(minecraft="23w13a", loader="quilt")
        assert decode(encode(lock)) == lock

    def test_encoding_is_stable(self):
        assert encode(sample_lock()) == encode(decode(encode(sample_lock())))

    def test_optional_fields_omitted(self):
        text = encode(sample_lock()).decode()
        assert 'digest = "sha1:' in text
        assert text.count("size =") == 1
        assert text.count("root = true") == 1

    def test_unknown_keys_ignored(self):
        raw = encode(sample_lock()).decode()
        raw = raw.replace("version = 1\n", "version = 2\ngenerator = \"future\"\n", 1)
        raw += 'maintainer = "someone"\n'
        lock = decode(raw.encode())

        assert lock.version == 2
        assert lock.mods == sample_lock().mods

    @pytest.mark.parametrize(
        "raw",
        [
            b"not [valid toml",
            b"\xff\xfe",
            b'version = 0\n[platform]\nminecraft = "1.20.1"\nloader = "fabric"\n',
            b'version = 1\n',
            b'version = 1\n[platform]\nminecraft = "1.20.1"\nloader = "bukkit"\n',
            b'version = 1\n[platform]\nminecraft = "1.20.1"\nloader = "fabric"\n'
            b'[[mods]]\nprovider = "modrinth"\nid = "x"\n',
            b'version = 1\n[platform]\nminecraft = "1.20.1"\nloader = "fabric"\n'
            b'[[mods]]\nprovider = "m"\nid = "x"\nversion = "1"\nversion_id = "a"\n'
            b'digest = "md5:abc"\nurl = "u"\nfilename = "f.jar"\n',
            b'version = 1\n[platform]\nminecraft = "1.20.1"\nloader = "fabric"\n'
            b'[[mods]]\nprovider = "m"\nid = "x"\nversion = "1"\nversion_id = "a"\n'
            b'digest = "sha1:' + b"a" * 40 + b'"\nurl = "u"\nfilename = "f.jar"\nsize = "big"\n',
        ],
    )
    def test_corrupt(self, raw):
        with pytest.raises(CorruptLockFile):
            decode(raw)


class TestGraphConversion:
    def test_from_graph_sorted_and_to_graph(self):
        a = candidate("zz-last", "1.0")
        b = candidate("aa-first", "2.0", side=Side.SERVER)
        graph = ResolutionGraph(
            platform=PLATFORM,
            selections={a.ref: a, b.ref: b},
            roots=(a.ref,),
            sides={a.ref: Side.CLIENT},
        )

        lock = LockFile.from_graph(graph)
        assert [m.id for m in lock.mods] == ["aa-first", "zz-last"]
        assert lock.mods[1].side == Side.CLIENT
        assert lock.mods[0].side == Side.SERVER

        rebuilt = decode(encode(lock)).to_graph()
        assert rebuilt.mapping() == graph.mapping()
        assert rebuilt.roots == (a.ref,)
        assert rebuilt.platform == PLATFORM
        assert rebuilt.get(b.ref).digest == b.digest
        assert rebuilt.get(b.ref).download.size == b.download.size
        assert rebuilt.violations() == []
        assert LockFile.from_graph(rebuilt) == lock


class TestFiles:
    def test_write_and_read(self, tmp_path):
        path = str(tmp_path / "nested" / "ffpack.lock")
        write_lockfile(path, sample_lock())

        assert read_lockfile(path) == sample_lock()
        assert [p.name for p in (tmp_path / "nested").iterdir()] == ["ffpack.lock"]

    def test_missing(self, tmp_path):
        with pytest.raises(LockFileError):
            read_lockfile(str(tmp_path / "none.lock"))

    def test_ref(self):
        assert sample_lock().mods[0].ref == ModRef("modrinth", "AANobbMI")
