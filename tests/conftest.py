import time

import pytest

from gh_traffic_stats.cache import CacheStore
from gh_traffic_stats.db import TrafficDatabase


class FakeClock:
    """
    manually advanced clock, starting at the real current time so
    file modification times stay comparable.
    """

    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(tmp_path, clock) -> CacheStore:
    return CacheStore(str(tmp_path / "cache"), ttl=3600, clock=clock)


@pytest.fixture()
def db(tmp_path):
    with TrafficDatabase(str(tmp_path / "stats.db")) as database:
        database.setup_database()
        yield database
