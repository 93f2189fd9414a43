"""
Tests for the sample buffer and polling sample sources.
"""

import threading
import time

import pytest

from telemetry_factory import lap_from_positions, make_sample, straight_positions
from trackinsight.services.sample_sources import (
    PollingSampleSource,
    ReplaySampleSource,
    SampleBuffer,
)


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.005)
    return condition()


class FlakySource(PollingSampleSource):
    """Fails the first `failures` reads, then returns samples"""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.reads = 0

    def _read_sample(self):
        self.reads += 1
        if self.reads <= self.failures:
            raise OSError("feed not ready")
        return make_sample(float(self.reads))


class CountingFeed(FlakySource):
    """FlakySource that counts how often the feed is opened and released"""

    def __init__(self, failures, **kwargs):
        super().__init__(failures, **kwargs)
        self.connects = 0
        self.disconnects = 0

    def _connect(self):
        self.connects += 1
        return True

    def _disconnect(self):
        self.disconnects += 1


class BlockingFeed(CountingFeed):
    """Blocks inside _read_sample until released"""

    def __init__(self, **kwargs):
        super().__init__(failures=0, **kwargs)
        self.entered = threading.Event()
        self.unblock = threading.Event()

    def _read_sample(self):
        self.entered.set()
        self.unblock.wait(5.0)
        return make_sample(0.0)


class TestSampleBuffer:
    """Tests for SampleBuffer"""

    def test_snapshot_is_immutable_copy(self):
        """Test that snapshots do not see later appends"""
        buffer = SampleBuffer()
        buffer.append(make_sample(0.0))
        snapshot = buffer.snapshot()
        buffer.append(make_sample(1.0))

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1
        assert len(buffer) == 2

    def test_drain_empties(self):
        """Test that drain returns and clears the buffer"""
        buffer = SampleBuffer()
        buffer.extend([make_sample(0.0), make_sample(1.0)])

        assert len(buffer.drain()) == 2
        assert len(buffer) == 0

    def test_concurrent_appends(self):
        """Test appends from several threads"""
        buffer = SampleBuffer()

        def producer(offset):
            for i in range(200):
                buffer.append(make_sample(offset + i))

        threads = [threading.Thread(target=producer, args=(k * 1000.0,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(buffer) == 800


class TestReplaySampleSource:
    """Tests for ReplaySampleSource"""

    @pytest.fixture
    def recording(self):
        return lap_from_positions(straight_positions(count=25), duration=5.0)

    def test_poll_once(self, recording):
        """Test a single poll"""
        source = ReplaySampleSource(recording)

        assert source.poll_once() is True
        assert source.is_connected
        assert source.buffer.snapshot() == (recording[0],)

    def test_disconnects_when_exhausted(self, recording):
        """Test that an exhausted replay disconnects"""
        source = ReplaySampleSource(recording[:2])
        assert source.read_sample() == recording[0]
        assert source.read_sample() == recording[1]

        assert source.read_sample() is None
        assert source.exhausted
        assert not source.is_connected

    def test_rewind(self, recording):
        """Test replaying from the start again"""
        source = ReplaySampleSource(recording[:1])
        source.read_sample()
        source.rewind()
        assert not source.exhausted
        assert source.read_sample() == recording[0]

    def test_background_replay(self, recording, test_config):
        """Test replaying through the polling thread"""
        source = ReplaySampleSource(recording, poll_interval=test_config.POLL_INTERVAL)
        source.start()
        try:
            assert source.is_running
            assert _wait_for(lambda: len(source.buffer) == len(recording))
        finally:
            source.stop()

        assert not source.is_running
        assert source.buffer.snapshot() == tuple(recording)

    def test_start_twice_is_harmless(self, recording, test_config):
        """Test that starting twice keeps one thread"""
        source = ReplaySampleSource(recording, poll_interval=test_config.POLL_INTERVAL)
        source.start()
        thread = source._thread
        source.start()
        try:
            assert source._thread is thread
        finally:
            source.stop()


class TestPollingSampleSource:
    """Tests for the polling loop's failure handling"""

    def test_backoff_doubles_up_to_cap(self):
        """Test that backoff doubles up to the cap"""
        source = FlakySource(failures=0, poll_interval=0.001, max_backoff=0.004)
        for _ in range(3):
            source._handle_failure()

        assert source.consecutive_failures == 3
        assert source._current_backoff == pytest.approx(0.004)

    def test_recovers_after_failures(self, test_config):
        """Test that polling resumes after failed reads"""
        source = FlakySource(
            failures=2,
            poll_interval=test_config.POLL_INTERVAL,
            max_backoff=test_config.MAX_BACKOFF,
        )
        source.start()
        try:
            assert _wait_for(lambda: len(source.buffer) >= 3)
        finally:
            source.stop()

        assert source.reads > 2
        assert source.consecutive_failures == 0

    def test_read_failure_propagates_outside_loop(self):
        """Test that a direct read raises the feed error"""
        source = FlakySource(failures=1)
        with pytest.raises(OSError):
            source.read_sample()

    def test_each_failure_releases_the_feed(self, test_config):
        """Every reconnect after a failed read is paired with a disconnect"""
        source = CountingFeed(
            failures=3,
            poll_interval=test_config.POLL_INTERVAL,
            max_backoff=test_config.MAX_BACKOFF,
        )
        source.start()
        try:
            assert _wait_for(lambda: len(source.buffer) >= 2)
        finally:
            source.stop()

        assert source.connects == 4
        assert source.disconnects == source.connects
        assert not source.is_connected

    def test_stop_waits_for_a_read_in_progress(self):
        """A read still running when stop() times out keeps the feed until it returns"""
        source = BlockingFeed(poll_interval=0.001)
        source.start()
        thread = source._thread
        assert source.entered.wait(2.0)

        source.stop(timeout=0.05)
        assert thread.is_alive()
        assert source.disconnects == 0

        source.unblock.set()
        thread.join(2.0)
        assert not thread.is_alive()
        assert source.disconnects == 1
        assert len(source.buffer) == 1
