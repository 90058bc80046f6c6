import pytest

from ffpack.api import ProviderRegistry, StaticProvider
from ffpack.download import ArtifactStore

from tests.factories import PLATFORM, PROVIDER


@pytest.fixture
def platform():
    return PLATFORM


@pytest.fixture
def provider():
    return StaticProvider(PROVIDER)


@pytest.fixture
def registry(provider):
    return ProviderRegistry([provider])


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(str(tmp_path / "store"))
