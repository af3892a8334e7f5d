import pytest

from fakes import FakeCluster, make_config


@pytest.fixture
def cluster_config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def fake_cluster():
    return FakeCluster()
