"""
Telemetry sample sources.

A SampleSource produces TelemetrySamples at a best-effort cadence, reports
whether it is connected, and can be started and stopped. Simulator-specific
decoding lives behind PollingSampleSource._read_sample(); the polling and
reconnect loop is written once, here.

Usage:
    source = ReplaySampleSource(recorded_samples)
    source.start()
    ...
    samples = source.buffer.snapshot()
    source.stop()
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from ..config.config import Config
from ..session.models import TelemetrySample

logger = logging.getLogger(__name__)


class SampleBuffer:
    """
    Thread-safe append-only buffer of samples.

    Producers append from their own thread; analysis code takes an
    immutable snapshot and never iterates the live list.
    """

    def __init__(self):
        self._samples: List[TelemetrySample] = []
        self._lock = threading.Lock()

    def append(self, sample: TelemetrySample) -> None:
        with self._lock:
            self._samples.append(sample)

    def extend(self, samples: Iterable[TelemetrySample]) -> None:
        with self._lock:
            self._samples.extend(samples)

    def snapshot(self) -> Tuple[TelemetrySample, ...]:
        with self._lock:
            return tuple(self._samples)

    def drain(self) -> Tuple[TelemetrySample, ...]:
        """Return everything buffered so far and empty the buffer."""
        with self._lock:
            drained = tuple(self._samples)
            self._samples = []
            return drained

    def clear(self) -> None:
        with self._lock:
            self._samples = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


class SampleSource(ABC):
    """Anything that produces telemetry samples."""

    @abstractmethod
    def start(self) -> None:
        """Begin producing samples."""

    @abstractmethod
    def stop(self) -> None:
        """Stop producing samples."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True while the underlying feed is reachable."""

    @abstractmethod
    def read_sample(self) -> Optional[TelemetrySample]:
        """Read one sample now, or None if nothing is available."""


class PollingSampleSource(SampleSource):
    """
    Background polling loop shared by every concrete feed.

    The loop connects, then reads samples every poll_interval and appends
    them to `buffer`. Read or connect failures back off exponentially up to
    max_backoff and trigger a reconnect. Subclasses implement _connect()
    and _read_sample(); _disconnect() is optional.
    """

    def __init__(
        self,
        buffer: Optional[SampleBuffer] = None,
        poll_interval: float = Config.POLL_INTERVAL,
        max_backoff: float = Config.MAX_BACKOFF
    ):
        """
        Args:
            buffer: Where samples go (a new SampleBuffer by default)
            poll_interval: Seconds between reads
            max_backoff: Longest wait after repeated failures
        """
        self.buffer = buffer if buffer is not None else SampleBuffer()
        self.poll_interval = poll_interval
        self.max_backoff = max_backoff

        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._connected = False
        self._current_backoff = poll_interval
        self._consecutive_failures = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def start(self) -> None:
        """Start the polling thread (no-op if already running)"""
        if self._running.is_set():
            return
        self._running.set()
        self._thread = threading.Thread(target=self._run, name=type(self).__name__, daemon=True)
        self._thread.start()
        logger.info(f"{type(self).__name__} started, polling every {self.poll_interval}s")

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        """Stop the polling thread and wait for it to exit"""
        self._running.clear()
        thread, self._thread = self._thread, None
        if thread is threading.current_thread():
            # _run releases the feed on its way out
            return
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(
                    f"{type(self).__name__} still inside a read after {timeout}s; "
                    f"the feed is released when that read returns"
                )
                return
        self._release()
        logger.info(f"{type(self).__name__} stopped")

    def read_sample(self) -> Optional[TelemetrySample]:
        if not self._connected:
            self._connected = self._connect()
            if not self._connected:
                return None
        return self._read_sample()

    def poll_once(self) -> bool:
        """
        One loop iteration: read a sample into the buffer.

        Returns:
            True if a sample was buffered
        """
        sample = self.read_sample()
        if sample is None:
            return False
        self.buffer.append(sample)
        return True

    def _run(self) -> None:
        while self._running.is_set():
            try:
                got_sample = self.poll_once()
            except (OSError, ValueError, RuntimeError) as e:
                logger.error(f"Sample read failed: {e}")
                self._release()
                self._handle_failure()
                continue

            self._current_backoff = self.poll_interval
            self._consecutive_failures = 0
            if not got_sample:
                time.sleep(self.poll_interval)
        self._release()

    def _release(self) -> None:
        """Disconnect if connected, so the next read reconnects"""
        if self._connected:
            self._connected = False
            self._disconnect()

    def _handle_failure(self) -> None:
        """Back off exponentially after a failure"""
        self._consecutive_failures += 1
        self._current_backoff = min(self._current_backoff * 2, self.max_backoff)
        logger.warning(
            f"Backing off for {self._current_backoff:.3f}s (failure #{self._consecutive_failures})"
        )
        time.sleep(self._current_backoff)

    def _connect(self) -> bool:
        """Open the feed. Return False if it is not available yet."""
        return True

    def _disconnect(self) -> None:
        """Release the feed."""

    @abstractmethod
    def _read_sample(self) -> Optional[TelemetrySample]:
        """Decode one sample from the feed, or None if no new data."""


class ReplaySampleSource(PollingSampleSource):
    """
    Replays a recorded sample sequence through the polling loop.

    Reports disconnected once the recording is exhausted.
    """

    def __init__(self, samples: Iterable[TelemetrySample], **kwargs):
        super().__init__(**kwargs)
        self._recording = tuple(samples)
        self._position = 0
        self._lock = threading.Lock()

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self._position >= len(self._recording)

    def _connect(self) -> bool:
        return not self.exhausted

    def _read_sample(self) -> Optional[TelemetrySample]:
        with self._lock:
            if self._position >= len(self._recording):
                self._connected = False
                return None
            sample = self._recording[self._position]
            self._position += 1
            return sample

    def rewind(self) -> None:
        with self._lock:
            self._position = 0
