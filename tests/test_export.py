import json
import zipfile

import pytest

from src.scribeflow.core.export import ExportFormat, ExportService, format_timestamp
from src.scribeflow.core.jobs.models import (
    JobStatus,
    TranscriptionJob,
    TranscriptionResult,
    TranscriptionSegment,
)

RESULT = TranscriptionResult(
    text="Hello there. General Kenobi.",
    segments=[
        TranscriptionSegment(start=0.0, end=1.25, text="Hello there."),
        TranscriptionSegment(start=1.25, end=3661.5, text="General Kenobi."),
    ],
    language="en",
    duration=3661.5,
)


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "00:00:00,000"), (1.234, "00:00:01,234"), (3661.5, "01:01:01,500"), (-3, "00:00:00,000")],
)
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


class TestExportService:
    def test_text(self):
        payload = ExportService().export(RESULT, ExportFormat.TEXT, "talk")

        assert payload.data == b"Hello there. General Kenobi."
        assert payload.filename == "talk.txt"
        assert payload.mime_type == "text/plain"

    def test_text_without_segments_uses_full_text(self):
        assert ExportService.as_text(TranscriptionResult(text="plain")) == "plain"

    def test_json(self):
        payload = ExportService().export(RESULT, "json")

        data = json.loads(payload.data)
        assert data["language"] == "en"
        assert len(data["segments"]) == 2
        assert payload.filename == "transcript.json"

    def test_srt(self):
        content = ExportService.as_srt(RESULT)

        assert content.splitlines()[:4] == [
            "1",
            "00:00:00,000 --> 00:00:01,250",
            "Hello there.",
            "",
        ]
        assert "01:01:01,500" in content

    def test_vtt(self):
        content = ExportService.as_vtt(RESULT)

        assert content.startswith("WEBVTT\n\n00:00:00.000 --> 00:00:01.250\nHello there.")

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            ExportService().export(RESULT, "docx")

    def test_write(self, tmp_path):
        path = ExportService().write(RESULT, ExportFormat.SRT, tmp_path / "out", "talk")

        assert path == tmp_path / "out" / "talk.srt"
        assert path.read_text(encoding="utf-8").startswith("1\n")

    def test_archive_skips_jobs_without_results(self, tmp_path):
        done = TranscriptionJob(
            id="a", audio_path="/x/a.wav", filename="a.wav", status=JobStatus.COMPLETED, result=RESULT
        )
        failed = TranscriptionJob(id="b", audio_path="/x/b.wav", filename="b.wav", status=JobStatus.FAILED)

        path = ExportService().archive([done, failed], tmp_path / "all.zip")

        with zipfile.ZipFile(path) as archive:
            assert sorted(archive.namelist()) == ["a/a.json", "a/a.txt"]
            assert archive.read("a/a.txt") == b"Hello there. General Kenobi."

    def test_archive_keeps_jobs_with_the_same_filename(self, tmp_path):
        other = TranscriptionResult(text="Second take.", segments=[], language="en")
        first = TranscriptionJob(
            id="one", audio_path="/x/take.wav", filename="take.wav",
            status=JobStatus.COMPLETED, result=RESULT,
        )
        second = TranscriptionJob(
            id="two", audio_path="/y/take.wav", filename="take.wav",
            status=JobStatus.COMPLETED, result=other,
        )

        path = ExportService().archive([first, second], tmp_path / "all.zip")

        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            assert len(names) == len(set(names)) == 4
            assert archive.read("one/take.txt") == b"Hello there. General Kenobi."
            assert archive.read("two/take.txt") == b"Second take."
