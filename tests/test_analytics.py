import json
import threading

import pytest

from src.scribeflow.core.analytics import (
    MAX_RECENT_EVENTS,
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsTracker,
)


@pytest.fixture
def analytics_path(tmp_path):
    return tmp_path / "data" / "analytics.json"


class TestCounters:
    def test_each_event_type_has_a_counter(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)

        tracker.record(AnalyticsEventType.JOB_COMPLETED, model_id="tiny", duration=1.5)
        tracker.record(AnalyticsEventType.JOB_COMPLETED, model_id="tiny")
        tracker.record(AnalyticsEventType.JOB_FAILED, reason="boom")
        tracker.record(AnalyticsEventType.CLOUD_FALLBACK, provider="openai")
        tracker.record(AnalyticsEventType.MODEL_DOWNLOADED, model_id="tiny")
        tracker.record(AnalyticsEventType.MODEL_DOWNLOAD_FAILED, model_id="tiny", reason="404")

        metrics = tracker.metrics
        assert metrics.jobs_completed == 2
        assert metrics.jobs_failed == 1
        assert metrics.cloud_fallbacks == 1
        assert metrics.model_downloads == 1
        assert metrics.model_download_failures == 1
        assert metrics.last_updated is not None

    def test_metrics_are_copies(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)
        metrics = tracker.metrics
        metrics.jobs_completed = 99

        assert tracker.metrics.jobs_completed == 0

    def test_recent_events_are_capped(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)
        for i in range(MAX_RECENT_EVENTS + 5):
            tracker.record(AnalyticsEventType.JOB_FAILED, reason=f"error {i}")

        recent = tracker.recent_events
        assert len(recent) == MAX_RECENT_EVENTS
        assert recent[0].reason == "error 5"
        assert recent[-1].reason == f"error {MAX_RECENT_EVENTS + 4}"
        assert tracker.metrics.jobs_failed == MAX_RECENT_EVENTS + 5

    def test_concurrent_records_are_all_counted(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)

        def worker():
            for _ in range(20):
                tracker.record(AnalyticsEventType.JOB_COMPLETED)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.metrics.jobs_completed == 80

    def test_reset_clears_everything(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)
        tracker.record(AnalyticsEventType.JOB_COMPLETED)

        tracker.reset()

        assert tracker.metrics.jobs_completed == 0
        assert tracker.recent_events == []
        assert AnalyticsTracker(analytics_path).metrics.jobs_completed == 0

    def test_metrics_changed_carries_snapshot(self, analytics_path, qtbot):
        tracker = AnalyticsTracker(analytics_path)

        with qtbot.waitSignal(tracker.metrics_changed, timeout=1000) as blocker:
            tracker.record(AnalyticsEventType.CLOUD_FALLBACK, provider="groq")

        assert blocker.args[0].cloud_fallbacks == 1


class TestPersistence:
    def test_reload_restores_counters_and_events(self, analytics_path):
        tracker = AnalyticsTracker(analytics_path)
        tracker.record(AnalyticsEventType.MODEL_DOWNLOADED, model_id="tiny")
        tracker.record(AnalyticsEventType.JOB_COMPLETED, model_id="tiny", duration=2.0)

        reloaded = AnalyticsTracker(analytics_path)

        assert reloaded.metrics.model_downloads == 1
        assert reloaded.metrics.jobs_completed == 1
        assert [e.type for e in reloaded.recent_events] == [
            AnalyticsEventType.MODEL_DOWNLOADED,
            AnalyticsEventType.JOB_COMPLETED,
        ]

    def test_file_layout(self, analytics_path):
        AnalyticsTracker(analytics_path).record(AnalyticsEventType.JOB_FAILED, reason="x")

        data = json.loads(analytics_path.read_text())
        assert data["metrics"]["jobs_failed"] == 1
        assert data["recent_events"][0]["type"] == "job_failed"
        assert data["recent_events"][0]["reason"] == "x"

    def test_corrupt_file_starts_from_zero(self, analytics_path, propagate_logs, caplog):
        analytics_path.parent.mkdir(parents=True)
        analytics_path.write_text("[1, 2")

        tracker = AnalyticsTracker(analytics_path)

        assert tracker.metrics.jobs_completed == 0
        assert "Starting from zero" in caplog.text

    def test_wrong_shape_starts_from_zero(self, analytics_path):
        analytics_path.parent.mkdir(parents=True)
        analytics_path.write_text(json.dumps({"metrics": {"jobs_completed": "many"}}))

        assert AnalyticsTracker(analytics_path).metrics.jobs_completed == 0


class TestDescribe:
    def test_job_completed(self):
        event = AnalyticsEvent(
            type=AnalyticsEventType.JOB_COMPLETED, model_id="tiny", duration=1.0
        )
        assert event.describe() == "Job completed with tiny in 1.00s"

    def test_cloud_fallback(self):
        event = AnalyticsEvent(type=AnalyticsEventType.CLOUD_FALLBACK, provider="openai")
        assert event.describe() == "Cloud fallback triggered for provider openai"

    def test_download_failed(self):
        event = AnalyticsEvent(
            type=AnalyticsEventType.MODEL_DOWNLOAD_FAILED, model_id="tiny", reason="404"
        )
        assert event.describe() == "Model download failed: tiny: 404"
