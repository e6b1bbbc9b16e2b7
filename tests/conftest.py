import io
import os
import stat
import sys
import textwrap
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

project_root = Path(__file__).resolve().parents[1]
project_root_str = str(project_root)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from pgbackup.config import Settings  # noqa: E402

FAKE_DUMP_PAYLOAD = b"fake-tar-archive-block " * 4096


@pytest.fixture
def fake_pg_dump(tmp_path, monkeypatch):
    """An executable stand-in for pg_dump driven by environment variables."""
    args_file = tmp_path / "pg_dump_args.txt"
    script = tmp_path / "fake_pg_dump"
    script.write_text(
        f"#!{sys.executable}\n"
        + textwrap.dedent(
            """
            import os
            import sys

            with open(os.environ["FAKE_PG_DUMP_ARGS"], "w") as fh:
                fh.write("\\n".join(sys.argv[1:]))

            sys.stderr.write("pg_dump: reading schemas\\n")
            sys.stderr.flush()
            mode = os.environ.get("FAKE_PG_DUMP_MODE", "ok")
            if mode == "fail":
                sys.stderr.write("pg_dump: error: connection to server failed\\n")
                sys.exit(1)
            if mode == "silent":
                sys.exit(0)
            block = b"fake-tar-archive-block " * 4096
            if mode == "chatty":
                # Well past a pipe buffer on stderr, before and between stdout blocks.
                for start in (0, 1500):
                    for i in range(start, start + 1500):
                        sys.stderr.write("pg_dump: notice %05d %s\\n" % (i, "x" * 80))
                    sys.stderr.flush()
                    sys.stdout.buffer.write(block)
                    sys.stdout.flush()
                sys.exit(0)
            sys.stdout.buffer.write(block)
            sys.stdout.flush()
            """
        )
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("FAKE_PG_DUMP_ARGS", str(args_file))
    monkeypatch.setenv("FAKE_PG_DUMP_MODE", "ok")

    class _FakeDump:
        path = str(script)

        @staticmethod
        def set_mode(mode):
            monkeypatch.setenv("FAKE_PG_DUMP_MODE", mode)

        @staticmethod
        def recorded_args():
            return args_file.read_text().split("\n") if args_file.exists() else None

    return _FakeDump()


class StubS3Client:
    """Records uploads instead of talking to a bucket."""

    def __init__(self, *, fail_with=None):
        self.fail_with = fail_with
        self.calls = []

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None, Config=None):
        self._maybe_fail()
        self.calls.append(
            {
                "method": "upload_fileobj",
                "bucket": bucket,
                "key": key,
                "body": fileobj.read(),
                "extra": dict(ExtraArgs or {}),
            }
        )

    def put_object(self, **kwargs):
        self._maybe_fail()
        body = kwargs.pop("Body")
        data = body.read() if isinstance(body, io.IOBase) or hasattr(body, "read") else body
        self.calls.append({"method": "put_object", "body": data, **kwargs})
        return {"ETag": '"stub"'}


def client_error(code="AccessDenied", message="Access Denied", operation="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def stub_s3():
    return StubS3Client()


@pytest.fixture
def make_settings(tmp_path, fake_pg_dump):
    scratch = tmp_path / "scratch"

    def _make(**overrides):
        values = dict(
            database_url="postgres://u:p@host/db",
            access_key_id="test-key",
            secret_access_key="test-secret",
            bucket="backups",
            endpoint="https://example.r2.cloudflarestorage.com",
            pg_dump_path=fake_pg_dump.path,
            scratch_dir=str(scratch),
        )
        values.update(overrides)
        return Settings(**values)

    return _make


def scratch_files(settings):
    if not os.path.isdir(settings.scratch_dir):
        return []
    return sorted(os.listdir(settings.scratch_dir))
