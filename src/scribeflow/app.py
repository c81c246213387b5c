"""Application runtime."""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from PySide6.QtCore import QCoreApplication, QObject, QTimer

from . import __app_name__, __version__
from .core.analytics import AnalyticsTracker
from .core.asr.catalog import ModelCatalog
from .core.asr.model_downloader import ModelDownloader
from .core.capture_status import init_capture_status, shutdown_capture_status
from .core.export import ExportFormat, ExportService
from .core.jobs.ledger import JobLedger
from .core.jobs.models import TranscriptionJob
from .core.jobs.orchestrator import JobOrchestrator
from .core.live.session import LiveSessionController
from .core.settings import get_analytics_file, get_jobs_file, get_recordings_dir, get_settings
from .utils.logger import get_logger, shutdown_logging
from .utils.network import AlwaysOffline, HttpConnectivityCheck

logger = get_logger(__name__)


class ScribeFlowApp(QObject):
    """Wires the ledger, orchestrator and live controller for one process."""

    def __init__(self, jobs_file: Optional[Path] = None, parent=None):
        super().__init__(parent)

        self._settings = get_settings()
        self._capture_status = init_capture_status()
        self._catalog = ModelCatalog()
        self._catalog.reconcile()
        self._analytics = AnalyticsTracker(get_analytics_file(), parent=self)

        if self._settings.offline_mode:
            connectivity = AlwaysOffline()
        else:
            connectivity = HttpConnectivityCheck(self._settings.connectivity_url)

        self._ledger = JobLedger(jobs_file or get_jobs_file(), parent=self)
        self._orchestrator = JobOrchestrator(
            self._ledger,
            catalog=self._catalog,
            connectivity=connectivity,
            settings_provider=get_settings,
            capture_status=self._capture_status,
            analytics=self._analytics,
            max_concurrent_jobs=self._settings.max_concurrent_jobs,
            parent=self,
        )
        self._live = LiveSessionController(
            catalog=self._catalog,
            settings_provider=get_settings,
            capture_status=self._capture_status,
            orchestrator=self._orchestrator,
            recordings_dir=get_recordings_dir(),
            parent=self,
        )
        self._export = ExportService()

    @property
    def orchestrator(self) -> JobOrchestrator:
        return self._orchestrator

    @property
    def ledger(self) -> JobLedger:
        return self._ledger

    @property
    def live(self) -> LiveSessionController:
        return self._live

    @property
    def analytics(self) -> AnalyticsTracker:
        return self._analytics

    @property
    def export_service(self) -> ExportService:
        return self._export

    def run(self) -> None:
        logger.info(f"Starting {__app_name__} v{__version__}")
        logger.info(
            f"Settings: model={self._settings.selected_model}, offline={self._settings.offline_mode}, "
            f"cloud={self._settings.cloud_provider if self._settings.enable_cloud_transcription else 'off'}"
        )
        self._orchestrator.recover_interrupted_jobs()
        self._orchestrator.purge_orphaned_jobs()
        self._orchestrator.ensure_processing()

    def shutdown(self) -> None:
        logger.info("Shutting down application")
        self._live.stop()
        self._orchestrator.shutdown()
        shutdown_capture_status()
        logger.info("Application shutdown complete")


class _BatchRunner(QObject):
    """Enqueues files, waits for every job to finish and prints the results."""

    def __init__(self, runtime: ScribeFlowApp, files: List[str], export_format, out_dir):
        super().__init__()
        self._runtime = runtime
        self._files = files
        self._format = export_format
        self._out_dir = out_dir
        self._pending = set()
        self.exit_code = 0

    def watch(self, job_id: str) -> None:
        if not self._pending:
            self._runtime.orchestrator.job_finished.connect(self._on_finished)
        self._pending.add(job_id)

    def start(self) -> None:
        for path in self._files:
            self.watch(self._runtime.orchestrator.enqueue(Path(path).resolve()))

    def _on_finished(self, job: TranscriptionJob) -> None:
        if job.id not in self._pending:
            return
        self._pending.discard(job.id)

        if job.result is not None:
            print(f"== {job.filename} [{job.stage}]")
            print(job.result.text)
            if self._format is not None:
                path = self._runtime.export_service.write(
                    job.result, self._format, self._out_dir, Path(job.filename).stem
                )
                print(f"-> {path}")
        else:
            self.exit_code = 1
            print(f"!! {job.filename}: {job.error}", file=sys.stderr)

        if not self._pending:
            QCoreApplication.quit()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scribeflow",
        description=f"{__app_name__} {__version__}: local and cloud transcription jobs",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    transcribe = sub.add_parser("transcribe", help="Transcribe audio files")
    transcribe.add_argument("files", nargs="+")
    transcribe.add_argument(
        "--export", choices=[f.value for f in ExportFormat], default=None
    )
    transcribe.add_argument("--out", default=".", help="Export directory")

    sub.add_parser("jobs", help="List jobs in the ledger")
    sub.add_parser("stats", help="Show usage counters")

    retry = sub.add_parser("retry", help="Retry a failed job")
    retry.add_argument("job_id")

    download = sub.add_parser("download", help="Download a model")
    download.add_argument("model_id")

    live = sub.add_parser("live", help="Stream from the microphone")
    live.add_argument("--seconds", type=float, default=30.0)
    live.add_argument("--backend", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "download":
        downloader = ModelDownloader(analytics=AnalyticsTracker(get_analytics_file()))
        try:
            ok = downloader.download(
                args.model_id, on_status=lambda status: print(status, file=sys.stderr)
            )
        except ValueError as e:
            print(e, file=sys.stderr)
            return 2
        return 0 if ok else 1

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(__app_name__)
    signal.signal(signal.SIGINT, lambda *args: QCoreApplication.quit())
    signal.signal(signal.SIGTERM, lambda *args: QCoreApplication.quit())

    runtime = ScribeFlowApp()
    try:
        if args.command == "jobs":
            for job in runtime.ledger.list():
                print(f"{job.id}  {job.status.value:<12} {job.stage:<14} {job.filename}")
            return 0

        if args.command == "stats":
            metrics = runtime.analytics.metrics
            for name, value in metrics.model_dump().items():
                print(f"{name:<24} {value}")
            return 0

        runtime.run()

        if args.command == "retry":
            if not runtime.orchestrator.retry(args.job_id):
                print(f"Job {args.job_id} cannot be retried", file=sys.stderr)
                return 1
            runner = _BatchRunner(runtime, [], None, None)
            runner.watch(args.job_id)
            app.exec()
            return runner.exit_code

        if args.command == "transcribe":
            fmt = ExportFormat(args.export) if args.export else None
            runner = _BatchRunner(runtime, args.files, fmt, Path(args.out))
            QTimer.singleShot(0, runner.start)
            app.exec()
            return runner.exit_code

        if args.command == "live":
            if args.backend:
                runtime.live.set_backend(args.backend)
            runtime.live.text_changed.connect(
                lambda final, partial: print(f"\r{final} {partial}", end="", flush=True)
            )
            if not runtime.live.start():
                print(runtime.live.error_message, file=sys.stderr)
                return 1
            QTimer.singleShot(int(args.seconds * 1000), QCoreApplication.quit)
            app.exec()
            runtime.live.stop()
            print()
            result = runtime.live.save(force=True)
            if result is not None:
                print(f"Saved {result.text_path}")
            return 0
    finally:
        runtime.shutdown()
        shutdown_logging()

    return 0


if __name__ == "__main__":
    sys.exit(main())
