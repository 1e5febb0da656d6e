# tests/test_tracker.py
"""Test adaptive progress reporting"""

import pytest

from playlist_cleaner.jobs.tracker import ProgressTracker


def count_reports(tracker):
    """Walk a full run the way the pipeline does and count reports."""
    reports = []
    for index in range(tracker.total_tracks + 1):
        if tracker.should_report_progress(index):
            tracker.create_update(index)
            reports.append(index)
    return reports


class TestBatching:
    """Test batch size computation"""

    @pytest.mark.parametrize("total, batch_size", [
        (1, 1), (10, 1), (20, 1), (21, 2), (100, 5), (120, 6), (10000, 500),
    ])
    def test_batch_size(self, total, batch_size, fake_clock):
        """Batch size is 5% of the total, rounded up, at least 1"""
        assert ProgressTracker(total, clock=fake_clock).batch_size == batch_size

    def test_batch_label(self, fake_clock):
        """Labels name the track range of the batch"""
        tracker = ProgressTracker(100, clock=fake_clock)
        assert tracker.batch_label(1) == "Processing tracks 1-5"
        assert tracker.batch_label(43) == "Processing tracks 41-45"
        assert tracker.batch_label(100) == "Processing tracks 96-100"


class TestShouldReportProgress:
    """Test report decisions"""

    def test_report_count_is_bounded(self, fake_clock):
        """At most about 20 batch reports for any playlist size"""
        for total in list(range(1, 250)) + [999, 1000, 1001, 5000, 12345]:
            tracker = ProgressTracker(total, clock=fake_clock)
            reports = count_reports(tracker)
            assert len(reports) <= 22, total
            assert tracker.expected_update_count <= 21

    def test_start_and_end_always_reported(self, fake_clock):
        """Index 0 and index N always report"""
        for total in (1, 2, 7, 50, 333):
            tracker = ProgressTracker(total, clock=fake_clock)
            reports = count_reports(tracker)
            assert reports[0] == 0
            assert reports[-1] == total

    def test_end_reported_even_if_batch_already_reported(self, fake_clock):
        tracker = ProgressTracker(100, clock=fake_clock)
        tracker.create_update(96)
        assert tracker.should_report_progress(99) is False
        assert tracker.should_report_progress(100) is True

    def test_time_based_report(self, fake_clock):
        """A report is due when the last one is older than the interval"""
        tracker = ProgressTracker(100, max_report_interval=10.0, clock=fake_clock)
        tracker.create_update(1)
        assert tracker.should_report_progress(2) is False

        fake_clock.advance(10.5)
        assert tracker.should_report_progress(2) is True

    def test_should_report_is_pure(self, fake_clock):
        """Asking twice without creating an update gives the same answer"""
        tracker = ProgressTracker(100, clock=fake_clock)
        tracker.create_update(0)
        assert tracker.should_report_progress(6) is True
        assert tracker.should_report_progress(6) is True


class TestShouldPersistProgress:
    """Test persist decisions"""

    def test_persist_is_coarser_than_report(self, fake_clock):
        """Persisting happens less often than reporting"""
        tracker = ProgressTracker(1000, clock=fake_clock)
        reports = count_reports(ProgressTracker(1000, clock=fake_clock))

        persists = []
        for index in range(1001):
            if tracker.should_persist_progress(index):
                tracker.mark_persisted(index)
                persists.append(index)

        assert len(persists) < len(reports)
        assert persists[0] == 0
        assert persists[-1] == 1000

    def test_persist_threshold(self, fake_clock):
        """A persist is due after a 10% move"""
        tracker = ProgressTracker(100, clock=fake_clock)
        tracker.mark_persisted(0)
        assert tracker.should_persist_progress(9) is False
        assert tracker.should_persist_progress(10) is True


class TestCreateUpdate:
    """Test snapshot contents"""

    def test_start_update(self, fake_clock):
        update = ProgressTracker(40, clock=fake_clock).create_update(0)
        assert update.percent == 0
        assert update.processed == 0
        assert update.total == 40
        assert update.message == "Initializing playlist processing..."

    def test_middle_update(self, fake_clock):
        update = ProgressTracker(40, clock=fake_clock).create_update(13, "HUMBLE.")
        assert update.percent == 32
        assert update.processed == 13
        assert update.current_batch == "Processing tracks 13-14"
        assert update.message == "Processing: HUMBLE."

    def test_final_update(self, fake_clock):
        update = ProgressTracker(3, clock=fake_clock).create_update(3)
        assert update.percent == 100
        assert update.message == "Finalizing playlist creation..."


class TestPreconditions:
    """Test invalid arguments"""

    @pytest.mark.parametrize("total", [0, -1])
    def test_non_positive_total(self, total):
        with pytest.raises(ValueError):
            ProgressTracker(total)

    @pytest.mark.parametrize("index", [-1, 11])
    def test_index_out_of_range(self, index, fake_clock):
        tracker = ProgressTracker(10, clock=fake_clock)
        with pytest.raises(ValueError):
            tracker.should_report_progress(index)
        with pytest.raises(ValueError):
            tracker.create_update(index)

    def test_persist_threshold_below_report_threshold(self):
        with pytest.raises(ValueError):
            ProgressTracker(10, report_threshold_percent=10, persist_threshold_percent=5)

    def test_threshold_out_of_range(self):
        with pytest.raises(ValueError):
            ProgressTracker(10, report_threshold_percent=0)
