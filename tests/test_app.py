"""Tests for application wiring and the command line entry point."""

from contextlib import ExitStack
from unittest.mock import patch

import pytest

from src.scribeflow.app import ScribeFlowApp, _build_parser, main
from src.scribeflow.core.analytics import AnalyticsEventType, AnalyticsTracker
from src.scribeflow.core.asr.catalog import ModelCatalog
from src.scribeflow.core.jobs.ledger import JobLedger
from src.scribeflow.core.jobs.models import JobStatus, TranscriptionJob
from src.scribeflow.core.settings import Settings

from helpers import write_test_wav


@pytest.fixture
def app_env(tmp_path):
    """Point the runtime at temporary storage with offline settings."""
    jobs_file = tmp_path / "jobs.json"
    with ExitStack() as stack:
        stack.enter_context(
            patch("src.scribeflow.app.get_settings", return_value=Settings(offline_mode=True))
        )
        stack.enter_context(
            patch(
                "src.scribeflow.app.ModelCatalog",
                side_effect=lambda: ModelCatalog(models_dir=tmp_path / "models"),
            )
        )
        stack.enter_context(patch("src.scribeflow.app.get_jobs_file", return_value=jobs_file))
        stack.enter_context(
            patch("src.scribeflow.app.get_analytics_file", return_value=tmp_path / "analytics.json")
        )
        stack.enter_context(
            patch("src.scribeflow.app.get_recordings_dir", return_value=tmp_path / "recordings")
        )
        stack.enter_context(patch("src.scribeflow.app.shutdown_logging"))
        stack.enter_context(patch("src.scribeflow.app.signal.signal"))
        yield jobs_file


class TestParser:
    def test_transcribe_arguments(self):
        args = _build_parser().parse_args(["transcribe", "a.wav", "b.wav", "--export", "srt"])

        assert args.command == "transcribe"
        assert args.files == ["a.wav", "b.wav"]
        assert args.export == "srt"
        assert args.out == "."

    def test_unknown_export_format(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["transcribe", "a.wav", "--export", "docx"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])


class TestScribeFlowApp:
    def test_startup_recovers_and_purges(self, app_env, tmp_path):
        audio = write_test_wav(tmp_path / "kept.wav")
        ledger = JobLedger(app_env)
        ledger.add(
            TranscriptionJob(
                id="busy", audio_path=str(audio), filename="kept.wav",
                status=JobStatus.TRANSCRIBING,
            )
        )
        ledger.add(
            TranscriptionJob(
                id="orphan", audio_path=str(tmp_path / "deleted.wav"), filename="deleted.wav",
                status=JobStatus.COMPLETED,
            )
        )

        runtime = ScribeFlowApp()
        try:
            runtime.run()

            assert runtime.ledger.get("busy").status == JobStatus.FAILED
            assert runtime.ledger.get("busy").stage == "interrupted"
            assert runtime.ledger.get("orphan") is None
        finally:
            runtime.shutdown()


class TestMain:
    def test_jobs_lists_ledger(self, app_env, tmp_path, capsys):
        JobLedger(app_env).add(
            TranscriptionJob(id="job-1", audio_path=str(tmp_path / "a.wav"), filename="a.wav")
        )

        assert main(["jobs"]) == 0

        out = capsys.readouterr().out
        assert "job-1" in out
        assert "queued" in out

    def test_retry_unknown_job(self, app_env, capsys):
        assert main(["retry", "missing"]) == 1
        assert "cannot be retried" in capsys.readouterr().err

    def test_stats_prints_counters(self, app_env, tmp_path, capsys):
        tracker = AnalyticsTracker(tmp_path / "analytics.json")
        tracker.record(AnalyticsEventType.JOB_COMPLETED, model_id="tiny")
        tracker.record(AnalyticsEventType.CLOUD_FALLBACK, provider="openai")

        assert main(["stats"]) == 0

        lines = {line.split()[0]: line.split()[1] for line in capsys.readouterr().out.splitlines()}
        assert lines["jobs_completed"] == "1"
        assert lines["cloud_fallbacks"] == "1"
        assert lines["jobs_failed"] == "0"
