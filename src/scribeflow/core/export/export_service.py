import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from ...utils.logger import get_logger
from ..jobs.models import TranscriptionJob, TranscriptionResult

logger = get_logger(__name__)


class ExportFormat(str, Enum):
    TEXT = "txt"
    JSON = "json"
    SRT = "srt"
    VTT = "vtt"

    @property
    def mime_type(self) -> str:
        return {
            ExportFormat.TEXT: "text/plain",
            ExportFormat.JSON: "application/json",
            ExportFormat.SRT: "application/x-subrip",
            ExportFormat.VTT: "text/vtt",
        }[self]


@dataclass(frozen=True)
class ExportPayload:
    data: bytes
    filename: str
    mime_type: str


def format_timestamp(seconds: float, separator: str = ",") -> str:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"


class ExportService:
    def export(
        self,
        result: TranscriptionResult,
        fmt: ExportFormat,
        filename: str = "transcript",
    ) -> ExportPayload:
        fmt = ExportFormat(fmt)
        if fmt == ExportFormat.TEXT:
            content = self.as_text(result)
        elif fmt == ExportFormat.JSON:
            content = result.model_dump_json(indent=2)
        elif fmt == ExportFormat.SRT:
            content = self.as_srt(result)
        else:
            content = self.as_vtt(result)

        return ExportPayload(
            data=content.encode("utf-8"),
            filename=f"{filename}.{fmt.value}",
            mime_type=fmt.mime_type,
        )

    def write(
        self,
        result: TranscriptionResult,
        fmt: ExportFormat,
        directory: Path,
        filename: str = "transcript",
    ) -> Path:
        payload = self.export(result, fmt, filename)
        path = Path(directory) / payload.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload.data)
        return path

    def archive(self, jobs: Iterable[TranscriptionJob], destination: Path) -> Path:
        """
        Zip the text and JSON export of every job that has a result.

        Each job gets its own folder named after its id.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        count = 0

        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for job in jobs:
                if job.result is None:
                    continue
                stem = Path(job.filename).stem or job.id
                for fmt in (ExportFormat.TEXT, ExportFormat.JSON):
                    payload = self.export(job.result, fmt, stem)
                    archive.writestr(f"{job.id}/{payload.filename}", payload.data)
                count += 1

        logger.info(f"Archived {count} transcript(s) to {destination}")
        return destination

    @staticmethod
    def as_text(result: TranscriptionResult) -> str:
        if not result.segments:
            return result.text
        return " ".join(segment.text for segment in result.segments)

    @staticmethod
    def as_srt(result: TranscriptionResult) -> str:
        lines = []
        for index, segment in enumerate(result.segments, start=1):
            lines.append(str(index))
            lines.append(
                f"{format_timestamp(segment.start)} --> {format_timestamp(segment.end)}"
            )
            lines.append(segment.text)
            lines.append("")
        return "\n".join(lines)

    @staticmethod
    def as_vtt(result: TranscriptionResult) -> str:
        lines = ["WEBVTT", ""]
        for segment in result.segments:
            lines.append(
                f"{format_timestamp(segment.start, '.')} --> {format_timestamp(segment.end, '.')}"
            )
            lines.append(segment.text)
            lines.append("")
        return "\n".join(lines)

