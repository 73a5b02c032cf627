"""chunk_actions + ChunkDispatcher: 청크 개수/순서, 동시 요청 상한, rolling window"""

import asyncio
import math

import pytest

from es_csv_indexer import ChunkDispatcher, chunk_actions


class RecordingWriter:
    """write 호출을 기록하고 동시 진행 수를 측정."""

    def __init__(self, delays: dict[int, float] | None = None):
        self.chunks: list[list] = []
        self.active = 0
        self.peak = 0
        self.delays = delays or {}

    async def __call__(self, chunk: list):
        idx = len(self.chunks)
        self.chunks.append(chunk)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(idx, 0.001))
        finally:
            self.active -= 1


@pytest.mark.parametrize("n,size", [(10, 3), (9, 3), (1, 5), (10_001, 10_000)])
def test_chunk_actions_covers_input_in_order(n, size):
    items = list(range(n))
    chunks = list(chunk_actions(items, size))
    assert len(chunks) == math.ceil(n / size)
    assert [x for c in chunks for x in c] == items
    assert all(len(c) <= size for c in chunks)


def test_chunk_actions_rejects_zero_size():
    with pytest.raises(ValueError):
        list(chunk_actions([1], 0))


def test_dispatch_issues_ceil_n_over_c_calls():
    async def scenario():
        writer = RecordingWriter()
        dispatcher = ChunkDispatcher(writer, chunk_size=10, max_concurrent=3)
        calls = await dispatcher.dispatch(list(range(95)))
        return writer, calls

    writer, calls = asyncio.run(scenario())
    assert calls == 10
    assert len(writer.chunks) == 10
    assert sorted(x for c in writer.chunks for x in c) == list(range(95))
    # 시작 순서 = 제출 순서
    assert [c[0] for c in writer.chunks] == list(range(0, 95, 10))


def test_in_flight_never_exceeds_cap():
    async def scenario():
        writer = RecordingWriter(delays={i: 0.001 * (i % 4 + 1) for i in range(40)})
        dispatcher = ChunkDispatcher(writer, chunk_size=5, max_concurrent=3)
        await dispatcher.dispatch(list(range(200)))
        return writer, dispatcher

    writer, dispatcher = asyncio.run(scenario())
    assert len(writer.chunks) == 40
    assert writer.peak == 3
    assert dispatcher.peak_in_flight == 3
    assert dispatcher.in_flight == 0


def test_rolling_window_admits_as_soon_as_any_call_finishes():
    """첫 청크가 멈춰 있어도 다른 청크가 끝나면 다음 청크가 바로 시작"""

    async def scenario():
        gate = asyncio.Event()
        started: list[int] = []
        finished: list[int] = []

        async def writer(chunk):
            started.append(chunk[0])
            if chunk[0] == 0:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            finished.append(chunk[0])

        dispatcher = ChunkDispatcher(writer, chunk_size=1, max_concurrent=2)
        task = asyncio.create_task(dispatcher.dispatch([0, 1, 2, 3]))
        for _ in range(100):
            if len(started) == 4:
                break
            await asyncio.sleep(0.001)
        snapshot = (list(started), list(finished))
        gate.set()
        await task
        return snapshot, finished

    (started, finished_before), finished = asyncio.run(scenario())
    assert started == [0, 1, 2, 3]
    assert 0 not in finished_before
    assert finished[-1] == 0


def test_single_slot_is_sequential():
    async def scenario():
        writer = RecordingWriter()
        await ChunkDispatcher(writer, chunk_size=2, max_concurrent=1).dispatch(list(range(7)))
        return writer

    writer = asyncio.run(scenario())
    assert writer.peak == 1
    assert writer.chunks == [[0, 1], [2, 3], [4, 5], [6]]


def test_small_batch_sent_whole():
    async def scenario():
        writer = RecordingWriter()
        calls = await ChunkDispatcher(writer, chunk_size=100, max_concurrent=2).dispatch(
            list(range(30))
        )
        return writer, calls

    writer, calls = asyncio.run(scenario())
    assert calls == 1
    assert writer.chunks == [list(range(30))]


def test_empty_batch_sends_nothing():
    async def scenario():
        writer = RecordingWriter()
        calls = await ChunkDispatcher(writer, chunk_size=10).dispatch([])
        return writer, calls

    writer, calls = asyncio.run(scenario())
    assert calls == 0 and writer.chunks == []


def test_failed_call_releases_its_slot():
    async def scenario():
        async def writer(chunk):
            await asyncio.sleep(0.001)
            if chunk[0] == 0:
                raise RuntimeError("enrich failed")

        dispatcher = ChunkDispatcher(writer, chunk_size=1, max_concurrent=2)
        with pytest.raises(RuntimeError):
            await dispatcher.dispatch([0, 1, 2])
        await asyncio.sleep(0.01)
        return dispatcher

    dispatcher = asyncio.run(scenario())
    assert dispatcher.in_flight == 0


def test_concurrency_below_one_is_clamped():
    dispatcher = ChunkDispatcher(RecordingWriter(), chunk_size=0, max_concurrent=0)
    assert dispatcher.max_concurrent == 1
    assert dispatcher.chunk_size == 1


def test_submit_buffers_until_a_full_chunk_and_drain_sends_the_rest():
    async def scenario():
        writer = RecordingWriter()
        dispatcher = ChunkDispatcher(writer, chunk_size=10, max_concurrent=2)
        started = [await dispatcher.submit(list(range(i, i + 4))) for i in range(0, 24, 4)]
        buffered = dispatcher.buffered
        last = await dispatcher.drain()
        return writer, started, buffered, last

    writer, started, buffered, last = asyncio.run(scenario())
    assert started == [0, 0, 1, 0, 1, 0]
    assert buffered == 4
    assert last == 1
    assert [len(c) for c in writer.chunks] == [10, 10, 4]
    assert [x for c in writer.chunks for x in c] == list(range(24))


def test_window_stays_open_between_submits():
    async def scenario():
        writer = RecordingWriter(delays={0: 0.05, 1: 0.05})
        dispatcher = ChunkDispatcher(writer, chunk_size=5, max_concurrent=2)
        await dispatcher.submit(list(range(5)))
        await asyncio.sleep(0)
        await dispatcher.submit(list(range(5, 10)))
        await asyncio.sleep(0)
        in_flight = dispatcher.in_flight
        await dispatcher.drain()
        return writer, in_flight

    writer, in_flight = asyncio.run(scenario())
    assert in_flight == 2
    assert writer.peak == 2


def test_failed_chunk_stops_new_launches_and_siblings_are_awaited():
    async def scenario():
        finished: list[int] = []

        async def writer(chunk):
            if chunk[0] == 0:
                raise RuntimeError("enrich failed")
            await asyncio.sleep(0.01)
            finished.append(chunk[0])

        dispatcher = ChunkDispatcher(writer, chunk_size=1, max_concurrent=2)
        await dispatcher.submit([0, 1])
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await dispatcher.submit([2])
        return dispatcher, finished

    dispatcher, finished = asyncio.run(scenario())
    assert finished == [1]
    assert dispatcher.in_flight == 0


def test_abort_discards_buffer_and_waits_for_started_calls():
    async def scenario():
        writer = RecordingWriter(delays={0: 0.01})
        dispatcher = ChunkDispatcher(writer, chunk_size=3, max_concurrent=2)
        await dispatcher.submit(list(range(5)))
        await dispatcher.abort()
        return writer, dispatcher

    writer, dispatcher = asyncio.run(scenario())
    assert writer.chunks == [[0, 1, 2]]
    assert dispatcher.buffered == 0
    assert dispatcher.in_flight == 0
