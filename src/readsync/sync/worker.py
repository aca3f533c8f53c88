from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from readsync.library.models import ProgressRecord

from .reconciler import SyncReconciler

log = logging.getLogger(__name__)


class SyncAction(enum.Enum):
    PULL = "pull"
    PUSH_ALL = "push_all"
    PUSH_ONE = "push_one"


@dataclass
class SyncCommand:
    action: SyncAction
    record: Optional[ProgressRecord] = None


class SyncWorker:
    """Runs reconciler commands one at a time on a background task.

    Stopping the worker cancels the task; commands still queued are dropped.
    """

    def __init__(self, reconciler: SyncReconciler) -> None:
        self._reconciler = reconciler
        self._queue: asyncio.Queue[SyncCommand] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    def pull(self) -> None:
        self._queue.put_nowait(SyncCommand(SyncAction.PULL))

    def push_all(self) -> None:
        self._queue.put_nowait(SyncCommand(SyncAction.PUSH_ALL))

    def push_one(self, record: ProgressRecord) -> None:
        self._queue.put_nowait(SyncCommand(SyncAction.PUSH_ONE, record))

    async def join(self) -> None:
        """Wait until every queued command has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                await self._execute(command)
            except Exception:
                log.exception("Sync command %s failed", command.action.value)
            finally:
                self._queue.task_done()

    async def _execute(self, command: SyncCommand) -> None:
        if command.action is SyncAction.PULL:
            await self._reconciler.pull_and_merge()
        elif command.action is SyncAction.PUSH_ALL:
            await self._reconciler.push_all()
        elif command.action is SyncAction.PUSH_ONE and command.record is not None:
            await self._reconciler.push_one(command.record)
