"""Progress events for a transfer attempt, consumed as an async iterator."""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .models import PipelineState, ProgressEvent


logger = logging.getLogger(__name__)

# Overall percentage at which each stage is reached
STAGE_PERCENT = {
    PipelineState.BALANCE_REFRESHED: 5.0,
    PipelineState.FEES_COMPUTED: 10.0,
    PipelineState.GAS_ESTIMATED: 15.0,
    PipelineState.PROVED: 85.0,
    PipelineState.POPULATED: 90.0,
    PipelineState.SUBMITTED: 95.0,
    PipelineState.SUCCEEDED: 100.0,
    PipelineState.FAILED: 100.0,
}

# Proof generation occupies this band of the overall progress
_PROOF_START = STAGE_PERCENT[PipelineState.GAS_ESTIMATED]
_PROOF_END = STAGE_PERCENT[PipelineState.PROVED]


class ProgressStream:
    """
    Non-blocking producer side, async-iterator consumer side.

    The pipeline never waits on a slow consumer; events queue up and the
    iterator finishes after the terminal event.

    Usage:
        stream = ProgressStream()
        task = asyncio.create_task(pipeline.submit_transfer(..., progress=stream))
        async for event in stream:
            print(event.percent, event.message)
        result = await task
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, state: PipelineState, message: str = "", percent: Optional[float] = None) -> None:
        if self._closed:
            return
        if percent is None:
            percent = STAGE_PERCENT.get(state, 0.0)
        self._queue.put_nowait(ProgressEvent(state=state, percent=percent, message=message))

    def proof_progress(self, proof_percent: float) -> None:
        """Adapter for the SDK proof callback (0-100 within the proof step)."""
        clamped = min(max(float(proof_percent), 0.0), 100.0)
        overall = _PROOF_START + (_PROOF_END - _PROOF_START) * clamped / 100.0
        self.emit(PipelineState.GAS_ESTIMATED, f"Generating proof {clamped:.0f}%", percent=overall)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
