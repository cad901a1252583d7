"""Tests for the event-emitting filesystem and download pipeline."""

import asyncio
import hashlib
import io
import zipfile
from pathlib import Path

import pytest

from acquisition.download import download_remote_archive, download_remote_file, ensure_hash
from acquisition.events import Event, EventKind
from acquisition.files import (
    create_directory,
    delete_if_exists,
    read_file,
    touch_file,
    unzip,
    write_file,
)
from common.errors import ArchiveError, FileConflictError, HashMismatchError, TransportError
from common.http_client import HttpClient, TransientStatusError
from versioning.models import RemoteArchive, RemoteFile


def collect(stream):
    async def run():
        return [event async for event in stream]

    return asyncio.run(run())


def kinds(events):
    return [e.kind for e in events]


def sha256(data):
    return hashlib.sha256(data).hexdigest()


def make_zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeHttp(HttpClient):
    """HttpClient whose downloads come from memory; entries may be exceptions."""

    def __init__(self, files, retries=3):
        super().__init__(retries=retries, backoff=0)
        self.files = {url: list(v) if isinstance(v, list) else [v] for url, v in files.items()}
        self.requested = []

    async def iter_download(self, url, dest, *, chunk_size=1024):
        self.requested.append(url)
        outcome = self.files[url][0] if len(self.files[url]) == 1 else self.files[url].pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        Path(dest).write_bytes(outcome)
        yield len(outcome), len(outcome)


class TestFilePrimitives:
    """write/touch/delete/create/read."""

    def test_write_creates_parents(self, tmp_path):
        path = tmp_path / "a" / "b.txt"
        events = collect(write_file("hi", path))
        assert path.read_text() == "hi"
        assert events == [Event(EventKind.WRITE_FILE, path=path, content="hi")]

    def test_write_refuses_to_overwrite(self, tmp_path):
        path = tmp_path / "b.txt"
        path.write_text("old")
        with pytest.raises(FileConflictError):
            collect(write_file("new", path))
        assert path.read_text() == "old"

    def test_write_overwrite(self, tmp_path):
        path = tmp_path / "b.txt"
        path.write_text("old")
        collect(write_file("new", path, overwrite=True))
        assert path.read_text() == "new"

    def test_write_onto_directory(self, tmp_path):
        with pytest.raises(FileConflictError) as excinfo:
            collect(write_file("x", tmp_path, overwrite=True))
        assert excinfo.value.kind == "directory"

    def test_touch_keeps_content(self, tmp_path):
        path = tmp_path / ".buckconfig"
        path.write_text("keep")
        assert kinds(collect(touch_file(path))) == [EventKind.TOUCH_FILE]
        assert path.read_text() == "keep"

    def test_delete_if_exists(self, tmp_path):
        folder = tmp_path / "dir"
        (folder / "sub").mkdir(parents=True)
        (folder / "sub" / "f").write_text("x")
        assert kinds(collect(delete_if_exists(folder))) == [EventKind.DELETE_FILE]
        assert not folder.exists()
        assert collect(delete_if_exists(folder)) == []

    def test_create_directory(self, tmp_path):
        path = tmp_path / "a" / "b"
        assert kinds(collect(create_directory(path))) == [EventKind.CREATE_DIRECTORY]
        assert path.is_dir()

    def test_read_file(self, tmp_path):
        path = tmp_path / "f.json"
        path.write_text("{}")
        (event,) = collect(read_file(path))
        assert event.kind is EventKind.READ_FILE
        assert event.content == "{}"


class TestUnzip:
    """Archive extraction."""

    def test_sub_path_only(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({
            "lib-1.0.0/BUCK": b"build",
            "lib-1.0.0/src/a.c": b"int a;",
            "other/readme": b"skip",
        }))
        target = tmp_path / "out"
        events = collect(unzip(archive, target, "lib-1.0.0"))
        assert kinds(events) == [EventKind.FILE_UNZIP]
        assert (target / "BUCK").read_bytes() == b"build"
        assert (target / "src" / "a.c").read_bytes() == b"int a;"
        assert not (target / "other").exists()

    def test_overwrites_existing_files(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"f.txt": b"new"}))
        target = tmp_path / "out"
        target.mkdir()
        (target / "f.txt").write_bytes(b"old")
        collect(unzip(archive, target))
        assert (target / "f.txt").read_bytes() == b"new"

    def test_missing_sub_path(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"f.txt": b"x"}))
        with pytest.raises(ArchiveError):
            collect(unzip(archive, tmp_path / "out", "nope"))

    def test_rejects_escaping_entries(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"../evil.txt": b"x"}))
        with pytest.raises(ArchiveError):
            collect(unzip(archive, tmp_path / "out"))
        assert not (tmp_path / "evil.txt").exists()

    def test_not_a_zip(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(b"not a zip")
        with pytest.raises(ArchiveError):
            collect(unzip(archive, tmp_path / "out"))


class TestEnsureHash:
    """Hash verification."""

    def test_match(self, tmp_path):
        path = tmp_path / "f"
        path.write_bytes(b"hello")
        events = collect(ensure_hash(path, sha256(b"hello").upper()))
        assert events == [Event(EventKind.FILE_HASH, path=path, sha256=sha256(b"hello"))]

    def test_mismatch_keeps_file(self, tmp_path):
        path = tmp_path / "f"
        path.write_bytes(b"hello")
        with pytest.raises(HashMismatchError) as excinfo:
            collect(ensure_hash(path, "0" * 64))
        assert excinfo.value.expected == "0" * 64
        assert excinfo.value.actual == sha256(b"hello")
        assert path.exists()

    def test_missing_expectation_is_skipped(self, tmp_path, caplog):
        path = tmp_path / "f"
        path.write_bytes(b"hello")
        events = collect(ensure_hash(path, None))
        assert kinds(events) == [EventKind.FILE_HASH]
        assert "accepting it unverified" in caplog.text


class TestDownloadRemoteFile:
    """Downloads with retries and idempotence."""

    url = "https://example.com/f.bin"

    def test_downloads_and_verifies(self, tmp_path):
        http = FakeHttp({self.url: b"hello"})
        target = tmp_path / "dl" / "f.bin"
        events = collect(download_remote_file(http, RemoteFile(self.url, sha256(b"hello")), target))
        assert kinds(events) == [
            EventKind.DOWNLOAD_STARTED,
            EventKind.DOWNLOAD_PROGRESS,
            EventKind.DOWNLOAD_COMPLETE,
            EventKind.FILE_HASH,
        ]
        assert events[1].progress == 1.0
        assert target.read_bytes() == b"hello"
        assert not (tmp_path / "dl" / "f.bin.part").exists()

    def test_existing_target_is_not_downloaded(self, tmp_path):
        http = FakeHttp({})
        target = tmp_path / "f.bin"
        target.write_bytes(b"hello")
        events = collect(download_remote_file(http, RemoteFile(self.url, sha256(b"hello")), target))
        assert kinds(events) == [EventKind.FILE_HASH]
        assert http.requested == []

    def test_hash_mismatch_leaves_file(self, tmp_path):
        http = FakeHttp({self.url: b"tampered"})
        target = tmp_path / "f.bin"
        with pytest.raises(HashMismatchError):
            collect(download_remote_file(http, RemoteFile(self.url, sha256(b"hello")), target))
        assert target.read_bytes() == b"tampered"

    def test_transient_failure_is_retried(self, tmp_path):
        http = FakeHttp({self.url: [TransientStatusError(503), b"hello"]})
        target = tmp_path / "f.bin"
        collect(download_remote_file(http, RemoteFile(self.url, sha256(b"hello")), target))
        assert http.requested == [self.url, self.url]
        assert target.read_bytes() == b"hello"

    def test_gives_up_without_partial_target(self, tmp_path):
        http = FakeHttp({self.url: TransientStatusError(503)}, retries=2)
        target = tmp_path / "f.bin"
        with pytest.raises(TransportError) as excinfo:
            collect(download_remote_file(http, RemoteFile(self.url), target))
        assert excinfo.value.attempts == 2
        assert not target.exists()
        assert not (tmp_path / "f.bin.part").exists()

    def test_permanent_failure_is_not_retried(self, tmp_path):
        http = FakeHttp({self.url: TransportError(self.url, "HTTP 404")})
        with pytest.raises(TransportError):
            collect(download_remote_file(http, RemoteFile(self.url), tmp_path / "f.bin"))
        assert http.requested == [self.url]


class TestDownloadRemoteArchive:
    """Zip download plus extraction."""

    url = "https://example.com/lib.zip"

    def test_download_and_extract(self, tmp_path):
        data = make_zip({"lib-abc/BUCK": b"build"})
        http = FakeHttp({self.url: data})
        target = tmp_path / "depforge" / "org.lib"
        events = collect(download_remote_archive(http, RemoteArchive(self.url, sha256(data), "lib-abc"), target))
        assert kinds(events)[-2:] == [EventKind.FILE_HASH, EventKind.FILE_UNZIP]
        assert (tmp_path / "depforge" / "org.lib.zip").exists()
        assert (target / "BUCK").read_bytes() == b"build"

    def test_second_run_reuses_archive(self, tmp_path):
        data = make_zip({"lib-abc/BUCK": b"build"})
        http = FakeHttp({self.url: data})
        target = tmp_path / "org.lib"
        archive = RemoteArchive(self.url, sha256(data), "lib-abc")
        collect(download_remote_archive(http, archive, target))
        collect(download_remote_archive(http, archive, target))
        assert http.requested == [self.url]
