"""Tests for manifest loading and validation."""

import json

import pytest

from ffpack.exceptions import ConfigError, ConfigParseError, ConfigValidationError
from ffpack.models import (
    FFPackConfig,
    ModEntry,
    ModLoader,
    MrpackMode,
    OutputFormat,
    ProjectType,
    Side,
)
from ffpack.utils import load_config

SHA1 = "a" * 40


def minimal(**extra):
    data = {"minecraft": {"version": "1.20.1", "mod_loader": "fabric", "mods": ["sodium"]}}
    data.update(extra)
    return data


class TestModEntry:
    def test_string_forms(self):
        assert ModEntry.from_value("sodium") == ModEntry("sodium")
        entry = ModEntry.from_value("url:mymod@>=1.0")
        assert entry.provider == "url"
        assert entry.id == "mymod"
        assert entry.version == ">=1.0"

    def test_table_form(self):
        entry = ModEntry.from_value(
            {
                "id": "iris",
                "version": "1.6.4",
                "side": "client",
                "devel": False,
                "feature": "shaders",
                "only_version": ["1.20.1"],
            },
            ProjectType.SHADER,
        )
        assert entry.side == Side.CLIENT
        assert entry.feature == ["shaders"]
        assert entry.devel is False
        assert entry.project_type == ProjectType.SHADER
        assert entry.version_range.matches("1.6.4")

    def test_invalid_entries(self):
        with pytest.raises(ConfigValidationError):
            ModEntry.from_value({"version": "1.0"})
        with pytest.raises(ConfigValidationError):
            ModEntry.from_value("sodium@>>1")
        with pytest.raises(ConfigValidationError):
            ModEntry.from_value({"id": "x", "side": "nowhere"})


class TestFFPackConfig:
    def test_defaults(self):
        config = FFPackConfig.from_dict(minimal())

        assert config.minecraft.mod_loader == ModLoader.FABRIC
        assert config.output.format == [OutputFormat.ZIP]
        assert config.output.mrpack_modes == [MrpackMode.DOWNLOAD]
        assert config.fetch.max_concurrent == 4
        assert config.resolver.preference == ("version", "recency")
        assert str(config.platform) == "1.20.1-fabric"

    def test_full(self, tmp_path):
        config = FFPackConfig.from_dict(
            minimal(
                output={"format": ["zip", "mrpack"], "mrpack_modes": ["reference"]},
                metadata={"name": "Pack", "version": "2.0", "author": "me"},
                fetch={"max_concurrent": 2, "fail_fast": False},
                resolver={"preference": ["stable", "version"]},
                features=["shaders"],
            ),
            base_dir=str(tmp_path),
        )
        assert config.output.format == [OutputFormat.ZIP, OutputFormat.MRPACK]
        assert config.metadata.author == "me"
        assert config.fetch.fail_fast is False
        assert config.resolver.preference == ("stable", "version")
        assert config.features == ["shaders"]

    def test_extra_urls(self, tmp_path):
        data = minimal()
        data["minecraft"]["extra_urls"] = [
            {"url": "https://example.com/files/tool.jar", "sha1": SHA1},
            {"path": "local/pack.zip", "digest": f"sha1:{SHA1}", "type": "resourcepack"},
        ]
        config = FFPackConfig.from_dict(data, base_dir=str(tmp_path))

        remote, local = config.minecraft.extra_urls
        assert remote.name == "tool"
        assert remote.filename == "tool.jar"
        assert str(remote.digest) == f"sha1:{SHA1}"
        assert local.url == "file://" + str(tmp_path / "local" / "pack.zip")
        assert local.type == ProjectType.RESOURCE_PACK

    def test_extra_url_blake3(self, tmp_path):
        data = minimal()
        data["minecraft"]["extra_urls"] = [
            {"path": "mods/MyAwesomeMod.jar", "blake3": "b" * 64},
        ]
        config = FFPackConfig.from_dict(data, base_dir=str(tmp_path))

        (extra,) = config.minecraft.extra_urls
        assert extra.digest.algorithm == "blake3"
        assert str(extra.digest) == "blake3:" + "b" * 64

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"minecraft": {"mod_loader": "fabric"}},
            {"minecraft": {"version": ["1.20.1", "1.19.2"]}},
            {"minecraft": {"version": "1.20.1", "mod_loader": "bukkit"}},
            {"minecraft": {"version": "not a version"}},
            minimal(fetch={"max_concurrent": 0}),
            minimal(resolver={"preference": ["fastest"]}),
            minimal(output={"format": ["tar"]}),
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ConfigValidationError):
            FFPackConfig.from_dict(data)

    def test_extra_url_requires_digest(self):
        data = minimal()
        data["minecraft"]["extra_urls"] = [{"url": "https://example.com/a.jar"}]
        with pytest.raises(ConfigValidationError):
            FFPackConfig.from_dict(data)


class TestLoadConfig:
    def test_formats(self, tmp_path):
        toml_path = tmp_path / "mods.toml"
        toml_path.write_text('[minecraft]\nversion = "1.20.1"\nmods = ["sodium"]\n')
        json_path = tmp_path / "mods.json"
        json_path.write_text(json.dumps(minimal()))
        yaml_path = tmp_path / "mods.yaml"
        yaml_path.write_text("minecraft:\n  version: '1.20.1'\n  mods: [sodium]\n")

        for path in (toml_path, json_path, yaml_path):
            assert load_config(str(path))["minecraft"]["version"] == "1.20.1"

    def test_errors(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "missing.toml"))

        ini = tmp_path / "mods.ini"
        ini.write_text("x")
        with pytest.raises(ConfigError):
            load_config(str(ini))

        broken = tmp_path / "mods.toml"
        broken.write_text("[minecraft\n")
        with pytest.raises(ConfigParseError):
            load_config(str(broken))
