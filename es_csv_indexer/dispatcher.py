"""청크 분할 + 동시 요청 수 제한 디스패처"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterator, Sequence, TypeVar

from .log import get_logger

logger = get_logger("dispatcher")

T = TypeVar("T")

ChunkWriter = Callable[[list], Awaitable[None]]


def chunk_actions(items: Sequence[T], chunk_size: int) -> Iterator[list[T]]:
    """
    시퀀스를 chunk_size 단위의 연속 구간으로 분할.

    ceil(len(items) / chunk_size)개를 순서대로 yield하며,
    이어 붙이면 원본과 동일합니다.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size는 1 이상이어야 합니다: {chunk_size}")
    for i in range(0, len(items), chunk_size):
        yield list(items[i : i + chunk_size])


class ChunkDispatcher:
    """
    write action을 chunk_size 단위로 모아 write 함수에 넘기되, 동시에 진행 중인
    호출을 max_concurrent 개로 제한.

    슬롯이 비어 있으면 바로 다음 청크를 시작하고, 가득 차면 아무 호출이나
    하나 끝날 때까지(성공/실패 무관) 대기 후 정확히 하나를 더 시작합니다.
    배리어 방식이 아닌 rolling window이며, 창은 submit 사이에도 유지되므로
    소스에서 다음 묶음을 읽는 동안에도 요청이 계속 진행됩니다.

    사용 예:
        dispatcher = ChunkDispatcher(write_chunk, chunk_size=10_000, max_concurrent=2)
        for actions in batches:
            await dispatcher.submit(actions)   # 꽉 찬 청크만 전송 시작
        await dispatcher.drain()               # 남은 청크 전송 + 전체 완료 대기

        await dispatcher.dispatch(actions)     # 배치 하나를 한 번에
    """

    def __init__(self, write: ChunkWriter, chunk_size: int, max_concurrent: int = 2):
        self.write = write
        self.chunk_size = max(1, chunk_size)
        self.max_concurrent = max(1, max_concurrent)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._buffer: list = []
        # 성공한 task는 완료 콜백에서 제거, 실패한 task는 drain에서 에러를 꺼낼 때까지 유지
        self._tasks: set[asyncio.Task] = set()
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    async def submit(self, actions: Sequence) -> int:
        """버퍼에 추가하고 chunk_size가 채워진 청크만 전송 시작. 반환값은 시작한 write 호출 수."""
        self._buffer.extend(actions)
        full = len(self._buffer) - len(self._buffer) % self.chunk_size
        if not full:
            return 0
        ready, self._buffer = self._buffer[:full], self._buffer[full:]
        started = 0
        for chunk in chunk_actions(ready, self.chunk_size):
            await self._launch(chunk)
            started += 1
        return started

    async def drain(self) -> int:
        """남은 버퍼를 마지막 청크로 보내고 모든 호출이 끝날 때까지 대기.

        Raises:
            write 호출이 던진 첫 번째 예외 (나머지 호출은 끝까지 기다린 뒤)
        """
        started = 0
        if self._buffer:
            chunk, self._buffer = self._buffer, []
            await self._launch(chunk)
            started = 1
        await self._wait_all()
        return started

    async def dispatch(self, actions: Sequence) -> int:
        """배치 하나를 전송하고 완료까지 대기. 반환값은 write 호출 횟수."""
        if not actions:
            return 0
        if len(actions) > self.chunk_size:
            logger.debug(
                f"{len(actions):,}건 → 청크 {self.chunk_size:,}건 단위, "
                f"동시 요청 최대 {self.max_concurrent}"
            )
        started = await self.submit(actions)
        return started + await self.drain()

    async def abort(self):
        """버퍼를 버리고 이미 시작한 호출만 끝까지 기다림. 소스 오류 등으로 중단할 때 사용."""
        if self._buffer:
            logger.warning(f"전송 전 버퍼 {len(self._buffer):,}건 폐기")
            self._buffer = []
        pending, self._tasks = list(self._tasks), set()
        results = await asyncio.gather(*pending, return_exceptions=True)
        failed = sum(isinstance(r, BaseException) for r in results)
        if failed:
            logger.warning(f"중단 중 실패한 청크 {failed}개")

    async def _launch(self, chunk: list):
        if any(self._failed(task) for task in self._tasks):
            # 실패한 호출이 있으면 더 시작하지 않고 에러를 올림
            await self._wait_all()
        await self._semaphore.acquire()
        self._enter()
        task = asyncio.create_task(self.write(chunk))
        task.add_done_callback(self._release)
        self._tasks.add(task)

    async def _wait_all(self):
        pending, self._tasks = list(self._tasks), set()
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    @staticmethod
    def _failed(task: asyncio.Task) -> bool:
        return task.done() and (task.cancelled() or task.exception() is not None)

    def _enter(self):
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def _release(self, task: asyncio.Task):
        self.in_flight -= 1
        self._semaphore.release()
        if not self._failed(task):
            self._tasks.discard(task)
