from concurrent.futures import ThreadPoolExecutor

import anyio
import httpx
import pytest

from skysync.models.metadata import MetadataBatch, MetaTrackGroup, NotReady
from skysync.models.track import AirspaceCrossing, Track, TrackBatch, create_track_id
from skysync.sync.codec import encode_metadata
from skysync.sync.engine import SyncState, TrackFetchError, TrackSyncEngine
from skysync.sync.worker import TrackWorker


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_track(group_id, index, start_ts=0, post_processed=False):
    return Track(
        id=create_track_id(group_id, index),
        name=f"pilot {group_id}-{index}",
        ts=[start_ts, start_ts + 10_000, start_ts + 20_000],
        lat=[45.0, 45.01, 45.02],
        lon=[6.0, 6.0, 6.0],
        alt=[1000, 1100, 1050],
        is_post_processed=post_processed,
    )


def make_engine(handler, clock=None, **kwargs):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://viewer.test"
    )
    kwargs.setdefault("metadata_ttl", 180)
    engine = TrackSyncEngine(
        http_client=client,
        worker=TrackWorker(executor_factory=lambda: ThreadPoolExecutor(max_workers=1)),
        poll_delay=0.01,
        clock=clock or FakeClock(),
        **kwargs,
    )
    return engine, client


def metadata_response(*groups):
    return httpx.Response(200, content=encode_metadata(list(groups)))


@pytest.mark.anyio
async def test_load_tracks_sets_cursor_and_enriches():
    engine, client = make_engine(lambda request: httpx.Response(204))
    added = []
    engine.add_groups_added_listener(added.append)

    async with client, engine:
        group_ids = engine.load_tracks(
            [make_track(1, 0, start_ts=5_000, post_processed=True), make_track(1, 1, start_ts=2_000, post_processed=True)]
        )
        await engine.wait_enrichment()

        assert group_ids == [1]
        assert added == [[1]]
        assert engine.current_track_id == "1-0"
        assert engine.timestamp == 5_000
        assert engine.state is SyncState.IDLE
        track = engine.store.get("1-1")
        assert track.max_alt == 1100
        assert track.vz == [0.0, 10.0, -5.0]

        # Later batches keep the cursor.
        engine.load_tracks([make_track(2, 0, post_processed=True)])
        assert engine.current_track_id == "1-0"


@pytest.mark.anyio
async def test_metadata_poll_patches_tracks_once_ready():
    requests: list[httpx.Request] = []
    crossing = AirspaceCrossing(name="TMA", category="C", top=3000, bottom=1500, start=0, end=1)

    def handler(request: httpx.Request):
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(204)
        return metadata_response(
            MetaTrackGroup(
                id=1,
                ground_altitudes=[[400, 420, 410], [10, 20, 30]],
                airspaces=[[crossing]],
            )
        )

    engine, client = make_engine(handler)
    async with client, engine:
        engine.load_tracks([make_track(1, 0), make_track(1, 1)])
        assert engine.state is SyncState.POLL_SCHEDULED

        with anyio.fail_after(5):
            await engine.wait_idle()

        assert len(requests) == 2
        assert requests[0].url.path == "/_metadata"
        assert requests[0].url.params["ids"] == "1"
        assert engine.state is SyncState.IDLE
        assert engine.pending.is_empty()
        assert engine.store.get("1-0").gnd_alt == [400, 420, 410]
        assert engine.store.get("1-1").gnd_alt == [10, 20, 30]
        assert engine.store.get("1-0").airspaces == [crossing]
        assert engine.store.get("1-1").airspaces is None


@pytest.mark.anyio
async def test_only_one_poll_chain_runs_at_a_time():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request):
        requests.append(request)
        return metadata_response(*(MetaTrackGroup(id=gid) for gid in (1, 2, 3)))

    engine, client = make_engine(handler)
    async with client, engine:
        engine.load_tracks([make_track(1, 0)])
        task = engine._poll_task
        engine.load_tracks([make_track(2, 0)])
        engine.request_metadata(3)
        engine.request_metadata(3)

        assert engine._poll_task is task
        with anyio.fail_after(5):
            await engine.wait_idle()

    assert len(requests) == 1
    assert requests[0].url.params["ids"] == "1,2,3"


@pytest.mark.anyio
async def test_pending_groups_expire_and_the_poll_chain_ends():
    clock = FakeClock(1_000.0)
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        clock.now += 40
        return httpx.Response(204)

    engine, client = make_engine(handler, clock=clock, metadata_ttl=60)
    async with client, engine:
        engine.load_tracks([make_track(1, 0)])

        with anyio.fail_after(5):
            await engine.wait_idle()

        assert len(requests) == 2
        assert engine.pending.is_empty()
        assert engine.state is SyncState.IDLE


@pytest.mark.anyio
async def test_network_errors_do_not_stop_polling():
    attempts = []

    def handler(request: httpx.Request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("offline", request=request)
        if len(attempts) == 2:
            return httpx.Response(200, content=b"garbage")
        return metadata_response(MetaTrackGroup(id=1, ground_altitudes=[[1, 2, 3]]))

    engine, client = make_engine(handler)
    async with client, engine:
        engine.load_tracks([make_track(1, 0)])

        with anyio.fail_after(5):
            await engine.wait_idle()

        assert len(attempts) == 3
        assert engine.store.get("1-0").gnd_alt == [1, 2, 3]


@pytest.mark.anyio
async def test_unexpected_poll_errors_are_logged_and_polling_continues(caplog):
    attempts = []

    def handler(request: httpx.Request):
        attempts.append(request)
        if len(attempts) == 1:
            raise RuntimeError("transport exploded")
        return metadata_response(MetaTrackGroup(id=1, ground_altitudes=[[4, 5, 6]]))

    engine, client = make_engine(handler)
    async with client, engine:
        engine.load_tracks([make_track(1, 0)])

        with anyio.fail_after(5):
            await engine.wait_idle()

        assert len(attempts) == 2
        assert engine.store.get("1-0").gnd_alt == [4, 5, 6]
        assert engine.state is SyncState.IDLE
        assert "Metadata poll failed" in caplog.text


@pytest.mark.anyio
async def test_metadata_for_removed_groups_is_ignored():
    removed = []

    def handler(request: httpx.Request):
        return metadata_response(MetaTrackGroup(id=1, ground_altitudes=[[1, 2, 3]]))

    engine, client = make_engine(handler)
    engine.add_groups_removed_listener(removed.append)
    async with client, engine:
        engine.load_tracks([make_track(1, 0), make_track(2, 0, start_ts=1_000, post_processed=True)])
        assert engine.remove_groups([1]) == ["1-0"]

        with anyio.fail_after(5):
            await engine.wait_idle()

        assert removed == [[1]]
        assert engine.store.ids() == ["2-0"]
        assert engine.current_track_id == "2-0"
        assert engine.pending.is_empty()


@pytest.mark.anyio
async def test_apply_metadata_not_ready_is_a_no_op():
    engine, client = make_engine(lambda request: httpx.Response(204))
    async with client, engine:
        engine.load_tracks([make_track(1, 0, post_processed=True)])

        assert engine.apply_metadata(NotReady()) == 0
        assert engine.apply_metadata(MetadataBatch(groups=[MetaTrackGroup(id=9, ground_altitudes=[[1]])])) == 0
        assert engine.apply_patch({"min_alt": 3}) is False


@pytest.mark.anyio
async def test_fetch_tracks_loads_batch():
    batch = TrackBatch(tracks=[make_track(8, 0, post_processed=True)])

    def handler(request: httpx.Request):
        if request.url.path == "/_tracks":
            return httpx.Response(200, content=batch.model_dump_json())
        return httpx.Response(500)

    engine, client = make_engine(handler)
    async with client, engine:
        group_ids = await engine.fetch_tracks("/_tracks")

        assert group_ids == [8]
        assert engine.fetching is False
        assert engine.current_track_id == "8-0"

        with pytest.raises(TrackFetchError):
            await engine.fetch_tracks("/missing")
        assert engine.fetching is False


@pytest.mark.anyio
async def test_close_cancels_polling():
    engine, client = make_engine(lambda request: httpx.Response(204))
    engine.poll_delay = 60
    async with client:
        engine.load_tracks([make_track(1, 0)])
        assert engine.state is SyncState.POLL_SCHEDULED

        await engine.aclose()

        assert engine.state is SyncState.IDLE
        engine.request_metadata(2)
        assert engine.state is SyncState.IDLE
