"""Tests for candidate ordering and manifest entry filtering."""

import pytest

from ffpack.models import ModEntry, MinecraftVersion, ModVersion, VersionRange
from ffpack.services import VersionMatcher

from tests.factories import PLATFORM, candidate


def versions(candidates):
    return [c.version for c in candidates]


class TestOrdering:
    def test_version_descending(self):
        ordered = VersionMatcher().order(
            [candidate("m", "1.2.0"), candidate("m", "1.10.0"), candidate("m", "1.9")]
        )
        assert versions(ordered) == ["1.10.0", "1.9", "1.2.0"]

    def test_recency_then_provider_order(self):
        ordered = VersionMatcher(("recency",)).order(
            [
                candidate("m", "3.0", published="2023-01-01"),
                candidate("m", "1.0", published="2024-01-01"),
                candidate("m", "2.0", published="2024-01-01"),
            ]
        )
        # same publish date: earlier listing position wins
        assert versions(ordered) == ["1.0", "2.0", "3.0"]

    def test_recommended_first(self):
        ordered = VersionMatcher(("recommended", "version")).order(
            [candidate("m", "2.0"), candidate("m", "1.5", featured=True)]
        )
        assert versions(ordered) == ["1.5", "2.0"]

    def test_stable_first(self):
        ordered = VersionMatcher(("stable", "version")).order(
            [
                candidate("m", "2.0-beta", version_type="beta"),
                candidate("m", "1.0"),
                candidate("m", "2.1-alpha", version_type="alpha"),
            ]
        )
        assert versions(ordered) == ["1.0", "2.0-beta", "2.1-alpha"]

    def test_order_ignores_input_order(self):
        items = [candidate("m", "1.0"), candidate("m", "1.0.0"), candidate("m", "v1")]
        matcher = VersionMatcher()
        assert versions(matcher.order(items)) == versions(matcher.order(items[::-1]))

    def test_unknown_preference(self):
        with pytest.raises(ValueError):
            VersionMatcher(("newest",))


class TestShouldInclude:
    def test_only_version(self):
        matcher = VersionMatcher()
        assert matcher.should_include(ModEntry("a", only_version=["1.20.1"]), PLATFORM, [])
        assert not matcher.should_include(ModEntry("a", only_version=["1.19.2"]), PLATFORM, [])

    def test_features_must_all_be_enabled(self):
        matcher = VersionMatcher()
        entry = ModEntry("a", feature=["shaders", "perf"])
        assert not matcher.should_include(entry, PLATFORM, ["shaders"])
        assert matcher.should_include(entry, PLATFORM, ["perf", "shaders"])
        assert matcher.should_include(ModEntry("b"), PLATFORM, [])

    def test_devel_build_excludes_release_only_entries(self):
        matcher = VersionMatcher()
        entry = ModEntry("a", devel=False)
        assert matcher.should_include(entry, PLATFORM, [])
        assert not matcher.should_include(entry, PLATFORM, [], devel=True)


class TestVersions:
    def test_minecraft_version_order(self):
        parse = MinecraftVersion.parse
        assert parse("1.19") < parse("1.19.0") < parse("1.19.1") < parse("1.20")
        assert parse("1.20.1") < parse("23w13a")
        assert parse("23w13a").is_snapshot

    def test_invalid_minecraft_version(self):
        with pytest.raises(ValueError):
            MinecraftVersion.parse("latest-ish")

    def test_mod_version_lenient(self):
        assert ModVersion("v1.2") < ModVersion("1.10")
        assert ModVersion("mc1.20.1-0.5.3") > ModVersion("0.0.1")

    @pytest.mark.parametrize(
        "raw", ["mc1.20.1-0.5.3", "MC1.20-0.5.3", "0.5.3+mc1.20.1", "0.5.3-mc1.20.1"]
    )
    def test_game_version_is_not_the_mod_version(self, raw):
        assert ModVersion(raw).parsed == ModVersion("0.5.3").parsed
        assert VersionRange.parse("<0.6").matches(raw)
        assert not VersionRange.parse(">=0.6").matches(raw)

    def test_range(self):
        assert VersionRange.parse(">=1.0,<2.0").matches("1.5")
        assert not VersionRange.parse(">=1.0,<2.0").matches("2.0")
        assert VersionRange.parse(None).is_any
        assert VersionRange.parse("latest").matches("anything")
        assert VersionRange.pinned("abc").matches("9.9", "abc")
        assert not VersionRange.pinned("abc").matches("9.9", "def")
        with pytest.raises(ValueError):
            VersionRange.parse(">>1")
