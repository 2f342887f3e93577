"""Fixed-interval resync of mounted surfaces.

This runs alongside the change bus as a backstop for missed notifications.
Each pass re-reads the latest persisted values; it never assumes exclusive
access and is safe to run while a mutation is in progress.
"""

import asyncio
import logging
from typing import List, Optional

from .surfaces import Surface

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    def __init__(self, surfaces: Optional[List[Surface]] = None, interval_seconds: float = 2.0) -> None:
        self.surfaces: List[Surface] = list(surfaces or [])
        self.interval_seconds = interval_seconds
        self.passes = 0
        self._task: Optional[asyncio.Task] = None

    def add(self, surface: Surface) -> None:
        if surface not in self.surfaces:
            self.surfaces.append(surface)

    def discard(self, surface: Surface) -> None:
        if surface in self.surfaces:
            self.surfaces.remove(surface)

    def run_once(self) -> int:
        reloaded = 0
        for surface in list(self.surfaces):
            if not surface.mounted:
                self.discard(surface)
                continue
            try:
                surface.reload()
                reloaded += 1
            except Exception:  # pylint: disable=broad-except
                logger.exception("Resync of %s failed", surface.name)
        self.passes += 1
        return reloaded

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
