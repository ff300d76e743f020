from concurrent.futures import ThreadPoolExecutor

import pytest

from skysync.models.track import Track
from skysync.sync.worker import TrackWorker, enrich_track, haversine_distance


def test_enrich_track_computes_altitude_and_speed():
    track = Track(
        id="5-0",
        ts=[0, 10_000, 20_000, 20_000],
        lat=[45.0, 45.0, 45.1, 45.1],
        lon=[6.0, 6.0, 6.0, 6.0],
        alt=[1000, 1050, 1020, 1030],
    )

    patch = enrich_track(track)

    assert patch["id"] == "5-0"
    assert patch["min_alt"] == 1000
    assert patch["max_alt"] == 1050
    assert patch["vz"] == [0.0, 5.0, -3.0, 0.0]
    assert patch["distance_km"] == pytest.approx(11.119, abs=1e-3)


def test_haversine_distance_one_degree_of_latitude():
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, rel=1e-4)


@pytest.mark.anyio
async def test_worker_starts_lazily_and_closes():
    worker = TrackWorker(executor_factory=lambda: ThreadPoolExecutor(max_workers=1))
    assert worker.started is False

    track = Track(id="1-0", ts=[0], lat=[45.0], lon=[6.0], alt=[900])
    patch = await worker.submit(track)

    assert worker.started is True
    assert patch["max_alt"] == 900
    worker.close()
    assert worker.started is False
