"""Tests for ArchiveOperations (export, download and write_body)."""

import hashlib
import os
from unittest.mock import Mock

import httpx
import pytest

from drive_archive.api import DriveClient
from drive_archive.archive.comparator import DownloadAction
from drive_archive.archive.operations import ArchiveOperations, write_body
from drive_archive.exceptions import (
    DriveDownloadError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    NoExportableFormatError,
)
from drive_archive.models import Record
from drive_archive.utils import parse_rfc3339

DOC = "application/vnd.google-apps.document"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
REMOTE_TIME = "2024-01-15T10:30:00.000Z"


def make_response(content: bytes) -> Mock:
    """Create a fake streamed response."""
    response = Mock()
    response.iter_bytes.return_value = iter([content[:3], content[3:]])
    return response


def binary_record(content: bytes = b"hello world", **kwargs) -> Record:
    return Record(
        id="bin1",
        name="a.bin",
        mime_type="application/octet-stream",
        md5_checksum=hashlib.md5(content).hexdigest(),
        modified_time=REMOTE_TIME,
        **kwargs,
    )


def doc_record(**kwargs) -> Record:
    return Record(id="doc1", name="Notes", mime_type=DOC, modified_time=REMOTE_TIME, **kwargs)


@pytest.fixture
def mock_client():
    """Create a mock Drive client."""
    return Mock(spec=DriveClient)


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def operations(mock_client, sleep):
    return ArchiveOperations(mock_client, initial_delay=0.25, max_tries=3, sleep=sleep)


class TestWriteBody:
    """Tests for write_body."""

    def test_writes_content_and_mtime(self, tmp_path):
        path = tmp_path / "out.txt"

        write_body([b"abc", b"", b"def"], path, REMOTE_TIME)

        assert path.read_bytes() == b"abcdef"
        assert path.stat().st_mtime == parse_rfc3339(REMOTE_TIME).timestamp()

    def test_truncates_existing_file(self, tmp_path):
        path = tmp_path / "out.txt"
        path.write_bytes(b"much longer old content")

        write_body([b"new"], path, None)

        assert path.read_bytes() == b"new"

    def test_invalid_timestamp_is_an_error(self, tmp_path):
        path = tmp_path / "out.txt"

        with pytest.raises(DriveDownloadError, match="could not parse modified time"):
            write_body([b"abc"], path, "yesterday")

        assert not path.exists()

    def test_failing_body_removes_partial_file(self, tmp_path):
        path = tmp_path / "out.txt"
        path.write_bytes(b"previous version")

        def chunks():
            yield b"partial"
            raise RuntimeError("stream broke")

        with pytest.raises(RuntimeError, match="stream broke"):
            write_body(chunks(), path, REMOTE_TIME)

        assert not path.exists()

    def test_unwritable_path_is_an_error(self, tmp_path):
        with pytest.raises(DriveDownloadError, match="could not write file"):
            write_body([b"abc"], tmp_path / "missing" / "out.txt", None)


class TestDownload:
    """Tests for raw downloads."""

    def test_downloads_binary_file(self, operations, mock_client, tmp_path):
        mock_client.open_download.return_value = make_response(b"hello world")
        path = tmp_path / "a.bin"

        decision = operations.download_file(binary_record(), path)

        assert decision.action == DownloadAction.DOWNLOAD
        assert path.read_bytes() == b"hello world"
        mock_client.open_download.assert_called_once_with("bin1")
        mock_client.open_download.return_value.close.assert_called_once()

    def test_skips_matching_file(self, operations, mock_client, tmp_path):
        path = tmp_path / "a.bin"
        path.write_bytes(b"hello world")

        decision = operations.download_file(binary_record(), path)

        assert decision.action == DownloadAction.SKIP_EXISTING
        mock_client.open_download.assert_not_called()

    def test_retries_transient_failure(self, operations, mock_client, sleep, tmp_path):
        mock_client.open_download.side_effect = [
            DriveNetworkError("reset"),
            make_response(b"hello world"),
        ]
        path = tmp_path / "a.bin"

        operations.download_file(binary_record(), path)

        assert path.read_bytes() == b"hello world"
        sleep.assert_called_once_with(0.25)

    def test_permanent_failure_raises(self, operations, mock_client, sleep, tmp_path):
        mock_client.open_download.side_effect = DriveNotFoundError("gone", status_code=404)

        with pytest.raises(DriveNotFoundError):
            operations.download_file(binary_record(), tmp_path / "a.bin")

        sleep.assert_not_called()

    def test_unsupported_type_raises(self, operations, mock_client, tmp_path):
        record = Record(id="m", name="map", mime_type="application/vnd.google-apps.map")

        with pytest.raises(NoExportableFormatError):
            operations.download_file(record, tmp_path / "map")

        mock_client.open_download.assert_not_called()
        mock_client.open_export.assert_not_called()

    def test_body_read_error_is_network_error(self, operations, mock_client, tmp_path):
        response = Mock()
        response.iter_bytes.side_effect = httpx.ReadError("connection lost")
        mock_client.open_download.return_value = response

        with pytest.raises(DriveNetworkError):
            operations.download_file(binary_record(), tmp_path / "a.bin")

        response.close.assert_called_once()
        assert not (tmp_path / "a.bin").exists()


class TestExport:
    """Tests for exporting Google documents."""

    def test_exports_document(self, operations, mock_client, tmp_path):
        mock_client.open_export.return_value = make_response(b"docx bytes")
        path = tmp_path / "Notes.docx"

        operations.download_file(doc_record(), path)

        mock_client.open_export.assert_called_once_with("doc1", DOCX)
        assert path.read_bytes() == b"docx bytes"
        assert path.stat().st_mtime == parse_rfc3339(REMOTE_TIME).timestamp()

    def test_skips_up_to_date_export(self, operations, mock_client, tmp_path):
        path = tmp_path / "Notes.docx"
        path.write_bytes(b"old")
        ts = parse_rfc3339(REMOTE_TIME).timestamp()
        os.utime(path, (ts, ts))

        decision = operations.download_file(doc_record(), path)

        assert decision.action == DownloadAction.SKIP_EXISTING
        mock_client.open_export.assert_not_called()

    def test_size_limit_falls_back_to_export_link(
        self, operations, mock_client, sleep, tmp_path
    ):
        mock_client.open_export.side_effect = DrivePermissionError(
            "too large", status_code=403, reasons=["exportSizeLimitExceeded"]
        )
        mock_client.open_url.return_value = make_response(b"big docx")
        record = doc_record(export_links={DOCX: "https://docs.example/export?id=doc1"})
        path = tmp_path / "Notes.docx"

        operations.download_file(record, path)

        mock_client.open_export.assert_called_once()
        mock_client.open_url.assert_called_once_with("https://docs.example/export?id=doc1")
        assert path.read_bytes() == b"big docx"
        sleep.assert_not_called()

    def test_size_limit_without_export_link(self, operations, mock_client, tmp_path):
        mock_client.open_export.side_effect = DrivePermissionError(
            "too large", status_code=403, reasons=["exportSizeLimitExceeded"]
        )

        with pytest.raises(DriveDownloadError, match="no export link found"):
            operations.download_file(doc_record(), tmp_path / "Notes.docx")

    def test_other_forbidden_error_does_not_fall_back(
        self, operations, mock_client, tmp_path
    ):
        mock_client.open_export.side_effect = DrivePermissionError(
            "denied", status_code=403, reasons=["cannotExportFile"]
        )
        record = doc_record(export_links={DOCX: "https://docs.example/export"})

        with pytest.raises(DrivePermissionError):
            operations.download_file(record, tmp_path / "Notes.docx")

        mock_client.open_url.assert_not_called()

    def test_interrupted_export_is_fetched_again(
        self, operations, mock_client, tmp_path
    ):
        def broken_body(chunk_size=None):
            yield b"partial"
            raise httpx.ReadError("connection lost")

        response = Mock()
        response.iter_bytes.side_effect = broken_body
        mock_client.open_export.return_value = response
        path = tmp_path / "Notes.docx"

        with pytest.raises(DriveNetworkError):
            operations.download_file(doc_record(), path)

        assert not path.exists()
        decision = operations.comparator.compare(doc_record(), path)
        assert decision.action == DownloadAction.DOWNLOAD

        mock_client.open_export.return_value = make_response(b"docx bytes")
        operations.download_file(doc_record(), path)

        assert path.read_bytes() == b"docx bytes"
