import asyncio
from collections import deque
from contextlib import asynccontextmanager


class RWLock:
    """Reader/writer lock for asyncio tasks.

    Many readers may hold the lock together, a writer holds it alone. Waiters are
    served in arrival order, so a queued writer blocks readers that arrive after
    it and a steady stream of broadcasts cannot starve a join or leave.

    Acquiring an uncontended lock never suspends and releasing never suspends, which
    keeps teardown paths safe to run while the task is being cancelled.
    """

    def __init__(self):
        self._readers = 0
        self._writer = False
        self._waiters = deque()

    def __repr__(self):
        state = "write-locked" if self._writer else f"readers={self._readers}"
        return f"<RWLock {state} waiters={len(self._waiters)}>"

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer

    async def acquire_read(self):
        if not self._writer and not self._waiters:
            self._readers += 1
            return
        await self._wait(writer=False)

    async def acquire_write(self):
        if not self._writer and not self._readers and not self._waiters:
            self._writer = True
            return
        await self._wait(writer=True)

    def release_read(self):
        if self._readers <= 0:
            raise RuntimeError("RWLock.release_read() called without a reader")
        self._readers -= 1
        self._wake()

    def release_write(self):
        if not self._writer:
            raise RuntimeError("RWLock.release_write() called without the writer")
        self._writer = False
        self._wake()

    @asynccontextmanager
    async def read(self):
        await self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @asynccontextmanager
    async def write(self):
        await self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    async def _wait(self, writer: bool):
        fut = asyncio.get_running_loop().create_future()
        entry = (fut, writer)
        self._waiters.append(entry)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # granted right before the cancellation landed, hand it back
                if writer:
                    self.release_write()
                else:
                    self.release_read()
            else:
                try:
                    self._waiters.remove(entry)
                except ValueError:
                    pass
                self._wake()
            raise

    def _wake(self):
        while self._waiters:
            fut, writer = self._waiters[0]
            if fut.done():
                self._waiters.popleft()
                continue
            if writer:
                if self._writer or self._readers:
                    return
                self._waiters.popleft()
                self._writer = True
                fut.set_result(None)
                return
            if self._writer:
                return
            self._waiters.popleft()
            self._readers += 1
            fut.set_result(None)
