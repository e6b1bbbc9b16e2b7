import base64
import gzip
import hashlib

import boto3
import pytest
from botocore.stub import ANY, Stubber

from conftest import StubS3Client, client_error
from pgbackup.core.exceptions import UploadFailed
from pgbackup.models import ArchiveFile
from pgbackup.services.integrity import attach_content_md5, default_hooks, md5_base64
from pgbackup.services.s3_upload import S3Uploader


def _archive(tmp_path, content=b"rows" * 256):
    path = tmp_path / "backup.tar.gz"
    with gzip.open(path, "wb") as fh:
        fh.write(content)
    return ArchiveFile(path=str(path), size=path.stat().st_size, valid=True)


@pytest.mark.parametrize(
    "subfolder, expected",
    [
        ("", "backup-2024.tar.gz"),
        ("nightly", "nightly/backup-2024.tar.gz"),
        ("/nested/dir/", "nested/dir/backup-2024.tar.gz"),
    ],
)
def test_remote_key(subfolder, expected):
    uploader = S3Uploader("bucket", subfolder=subfolder, client=StubS3Client())
    assert uploader.remote_key("backup-2024.tar.gz") == expected


def test_upload_streams_file_with_content_type(tmp_path, stub_s3):
    archive = _archive(tmp_path)
    uploader = S3Uploader("backups", subfolder="db", client=stub_s3)

    uploader.upload(archive, uploader.describe("backup.tar.gz"))

    (call,) = stub_s3.calls
    assert call["method"] == "upload_fileobj"
    assert call["bucket"] == "backups"
    assert call["key"] == "db/backup.tar.gz"
    assert call["extra"] == {"ContentType": "application/gzip"}
    assert call["body"] == (tmp_path / "backup.tar.gz").read_bytes()


def test_client_error_becomes_upload_failed_with_context(tmp_path):
    archive = _archive(tmp_path)
    uploader = S3Uploader("backups", client=StubS3Client(fail_with=client_error()))

    with pytest.raises(UploadFailed) as excinfo:
        uploader.upload(archive, uploader.describe("backup.tar.gz"))

    assert excinfo.value.bucket == "backups"
    assert excinfo.value.key == "backup.tar.gz"
    assert "AccessDenied" in str(excinfo.value)
    assert "bucket=backups" in str(excinfo.value)


def test_missing_local_file_becomes_upload_failed(tmp_path, stub_s3):
    uploader = S3Uploader("backups", client=stub_s3)
    archive = ArchiveFile(path=str(tmp_path / "gone.tar.gz"), size=10, valid=True)

    with pytest.raises(UploadFailed):
        uploader.upload(archive, uploader.describe("gone.tar.gz"))
    assert stub_s3.calls == []


def test_md5_hook_attaches_base64_raw_digest(tmp_path):
    archive = _archive(tmp_path)
    raw = (tmp_path / "backup.tar.gz").read_bytes()
    expected = base64.b64encode(hashlib.md5(raw).digest()).decode()

    descriptor = attach_content_md5(archive, S3Uploader("b", client=StubS3Client()).describe("x.tar.gz"))

    assert md5_base64(archive.path) == expected
    assert descriptor.content_md5 == expected
    assert descriptor.key == "x.tar.gz"


def test_default_hooks_follow_object_lock_toggle(make_settings):
    assert default_hooks(make_settings()) == []
    assert default_hooks(make_settings(support_object_lock=True)) == [attach_content_md5]


def test_content_md5_upload_uses_single_put(tmp_path, stub_s3):
    archive = _archive(tmp_path)
    uploader = S3Uploader("backups", client=stub_s3)
    descriptor = attach_content_md5(archive, uploader.describe("backup.tar.gz"))

    uploader.upload(archive, descriptor)

    (call,) = stub_s3.calls
    assert call["method"] == "put_object"
    assert call["ContentMD5"] == descriptor.content_md5
    assert call["ContentType"] == "application/gzip"
    assert call["ContentLength"] == archive.size


def test_put_object_request_shape_against_botocore(tmp_path):
    archive = _archive(tmp_path)
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="key",
        aws_secret_access_key="secret",
    )
    uploader = S3Uploader("backups", subfolder="db", client=client)
    descriptor = attach_content_md5(archive, uploader.describe("backup.tar.gz"))

    with Stubber(client) as stubber:
        stubber.add_response(
            "put_object",
            {"ETag": '"abc"'},
            expected_params={
                "Bucket": "backups",
                "Key": "db/backup.tar.gz",
                "Body": ANY,
                "ContentLength": archive.size,
                "ContentType": "application/gzip",
                "ContentMD5": descriptor.content_md5,
            },
        )
        uploader.upload(archive, descriptor)
        stubber.assert_no_pending_responses()


def test_public_url_uses_configured_base():
    uploader = S3Uploader("b", public_access_url="https://cdn.example.com/", client=StubS3Client())
    assert uploader.public_url("db/x.tar.gz") == "https://cdn.example.com/db/x.tar.gz"
    assert S3Uploader("b", client=StubS3Client()).public_url("x") is None
