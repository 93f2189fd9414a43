"""
Lap segmentation for a continuous telemetry stream.

Splits the stream into runs of consecutive samples that share a reported
lap number. Lap numbers are taken as reported; gaps are not filled in.
"""

import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

from ..session.models import TelemetrySample, snapshot_samples

logger = logging.getLogger(__name__)


class LapRun(NamedTuple):
    """The samples of one closed lap, in stream order."""
    lap_number: int
    samples: Tuple[TelemetrySample, ...]


class LapSegmenter:
    """
    Incremental lap segmenter.

    Feed samples with add_sample() as they arrive; a run closes as soon as
    a sample with a different lap number shows up. Call finish() at the end
    of the stream to close the last run.

    Example:
        >>> segmenter = LapSegmenter()
        >>> runs = [r for r in map(segmenter.add_sample, samples) if r]
        >>> last = segmenter.finish()
    """

    def __init__(self, on_lap_closed: Optional[Callable[[LapRun], None]] = None):
        """
        Args:
            on_lap_closed: Optional callback invoked with every closed LapRun
        """
        self.on_lap_closed = on_lap_closed
        self._buffer: List[TelemetrySample] = []
        self._current_lap: Optional[int] = None

    @property
    def current_lap(self) -> Optional[int]:
        return self._current_lap

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    def add_sample(self, sample: TelemetrySample) -> Optional[LapRun]:
        """
        Add one sample.

        Returns:
            The LapRun closed by this sample, or None
        """
        closed = None
        if self._buffer and sample.lap_number != self._current_lap:
            closed = self._close()

        self._buffer.append(sample)
        self._current_lap = sample.lap_number
        return closed

    def finish(self) -> Optional[LapRun]:
        """Close the in-progress run, if any."""
        if not self._buffer:
            return None
        return self._close()

    def _close(self) -> LapRun:
        run = LapRun(lap_number=self._current_lap, samples=tuple(self._buffer))
        self._buffer = []
        logger.debug(f"Closed lap {run.lap_number} with {len(run.samples)} samples")
        if self.on_lap_closed is not None:
            self.on_lap_closed(run)
        return run

    @classmethod
    def segment(cls, samples) -> List[LapRun]:
        """
        Split a whole stream into lap runs.

        Concatenating the runs' samples gives back the input exactly.
        """
        segmenter = cls()
        runs = []
        for sample in snapshot_samples(samples):
            closed = segmenter.add_sample(sample)
            if closed is not None:
                runs.append(closed)
        last = segmenter.finish()
        if last is not None:
            runs.append(last)
        return runs
