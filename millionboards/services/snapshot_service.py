"""Orchestration of scanning the board: moving a client's view step by step and storing what it sees."""

import asyncio
import logging
from typing import Optional

from millionboards.client.chess_client import ChessClient
from millionboards.client.connection import retry_time
from millionboards.core.config import MAX_CENTER_COORD
from millionboards.core.exceptions import ChessError, ClientError, ErrorReason
from millionboards.core.models import SnapshotModel
from millionboards.db.repository import SnapshotRepository

logger = logging.getLogger(__name__)

# View moves failing for these reasons are worth another try
RETRYABLE_REASONS = frozenset(
    {ErrorReason.TIMEOUT, ErrorReason.CONNECTION_CLOSED, ErrorReason.RETRY_EXHAUSTED}
)


def view_steps(start: int, end: int, step: int, max_coord: int = MAX_CENTER_COORD) -> list[int]:
    """
    Center positions from `start` to `end`, `step` apart.

    The last position is always `end` itself (clamped to `max_coord`, like every other one),
    so the whole range gets covered even when it is not a multiple of `step`.
    """
    if step < 1:
        raise ChessError(f"Step must be positive, got: {step}", ErrorReason.INVALID_VALUE, step)

    steps: list[int] = []
    for i in range(start, end + 1, step):
        center = min(i, max_coord)
        if not steps or steps[-1] != center:
            steps.append(center)

    last = min(end, max_coord)
    if steps and steps[-1] < last:
        steps.append(last)
    return steps


class SnapshotService:
    """Orchestration of a client and a snapshot repository."""

    def __init__(
        self,
        client: ChessClient,
        repository: SnapshotRepository,
        max_retry_count: int = 3,
        retry_delay: float = 10.0,
    ) -> None:
        self.client = client
        self.repo = repository
        self.max_retry_count = max_retry_count
        self.retry_delay = retry_delay

    @staticmethod
    def view_steps(start: int, end: int, step: int, max_coord: int = MAX_CENTER_COORD) -> list[int]:
        return view_steps(start, end, step, max_coord)

    def capture_current(self) -> SnapshotModel:
        """Store whatever the client's board holds right now."""
        stored, snapshot_id = self.repo.save_snapshot(self.client.board.to_model())
        logger.debug(
            "Stored snapshot %d around %d,%d (%d pieces)",
            snapshot_id,
            stored.center_x,
            stored.center_y,
            stored.piece_count,
        )
        return stored

    async def capture_view(self, center_x: int, center_y: int) -> SnapshotModel:
        """Move the view to (center_x, center_y), then store the board."""
        board = self.client.board
        if (board.center_x, board.center_y) != (center_x, center_y):
            await self._move_view(center_x, center_y)
        return self.capture_current()

    async def scan_area(
        self,
        x_start: int,
        y_start: int,
        x_end: int,
        y_end: int,
        step: Optional[int] = None,
    ) -> list[SnapshotModel]:
        """
        Capture every view center of the area, row by row.
        ----
        The default step is the viewport length, so consecutive views just touch.
        """
        step = step or self.client.board.length
        x_steps = view_steps(x_start, x_end, step)
        y_steps = view_steps(y_start, y_end, step)

        snapshots: list[SnapshotModel] = []
        for y in y_steps:
            for x in x_steps:
                logger.info("Scanning %d. view: %d,%d", len(snapshots), x, y)
                snapshots.append(await self.capture_view(x, y))

        logger.info("Scan finished: %d snapshots stored", len(snapshots))
        return snapshots

    # -- Helper methods --
    async def _move_view(self, center_x: int, center_y: int) -> None:
        retries = 0
        while True:
            try:
                return await self.client.move_view(center_x, center_y)
            except ClientError as err:
                if err.reason not in RETRYABLE_REASONS:
                    raise

                retries += 1
                if retries > self.max_retry_count:
                    raise

                delay = retry_time(self.retry_delay, 0.3 * self.retry_delay, error=True)
                logger.warning(
                    "Retrying view %d,%d (%d/%d) in %.1fs: %s",
                    center_x,
                    center_y,
                    retries,
                    self.max_retry_count,
                    delay,
                    err,
                )
                await asyncio.sleep(delay)
