"""
Tests for object store adapters.

The local adapter runs against tmp_path; the S3 adapter gets a fake boto3
client so no network is involved.
"""

import pytest
from botocore.exceptions import ClientError

from shorts_worker.adapters.s3_adapter import S3ObjectStore


def client_error(code, operation="GetObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestLocalObjectStore:
    """Test the directory-backed store."""

    def test_put_get(self, object_store):
        object_store.put("posts/a.txt", b"hello", "text/plain")
        assert object_store.get("posts/a.txt") == b"hello"

    def test_missing_get(self, object_store):
        assert object_store.get("posts/none.txt") is None

    def test_list_by_prefix(self, object_store):
        object_store.put("posts/b.mp3", b"bb")
        object_store.put("posts/a.mp3", b"a")
        object_store.put("shorts/c.mp4", b"c")

        listed = object_store.list("posts/")

        assert [obj["key"] for obj in listed] == ["posts/a.mp3", "posts/b.mp3"]
        assert listed[1]["size"] == 2

    def test_copy_and_delete(self, object_store):
        object_store.put("posts/a.mp3", b"a")
        object_store.copy("posts/a.mp3", "posts/.trash/a.mp3")
        object_store.delete("posts/a.mp3")
        object_store.delete("posts/a.mp3")

        assert object_store.get("posts/a.mp3") is None
        assert object_store.get("posts/.trash/a.mp3") == b"a"

    def test_copy_missing(self, object_store):
        with pytest.raises(FileNotFoundError):
            object_store.copy("posts/none.mp3", "posts/x.mp3")

    def test_download_and_upload(self, object_store, tmp_path):
        object_store.put("audio/a.mp3", b"audio")
        local = tmp_path / "a.mp3"

        assert object_store.download_file("audio/a.mp3", str(local)) is True
        assert local.read_bytes() == b"audio"
        assert object_store.download_file("audio/none.mp3", str(tmp_path / "x")) is False

        object_store.upload_file(str(local), "shorts/a.mp3")
        assert object_store.get("shorts/a.mp3") == b"audio"

    def test_key_cannot_escape_root(self, object_store):
        with pytest.raises(ValueError):
            object_store.get("../../etc/passwd")

    def test_public_url(self, object_store):
        assert object_store.public_url("shorts/a.mp4") == "https://cdn.example.com/shorts/a.mp4"


class FakeBody:
    def __init__(self, data):
        self.data = data

    def read(self):
        return self.data


class FakeS3Client:
    def __init__(self, objects=None, error=None):
        self.objects = dict(objects or {})
        self.error = error
        self.puts = []

    def get_object(self, Bucket, Key):
        if self.error:
            raise self.error
        if Key not in self.objects:
            raise client_error("NoSuchKey")
        return {"Body": FakeBody(self.objects[Key])}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.puts.append((Key, ContentType))
        self.objects[Key] = Body

    def download_file(self, bucket, key, local_path):
        if key not in self.objects:
            raise client_error("404", "HeadObject")
        with open(local_path, "wb") as f:
            f.write(self.objects[key])

    def delete_object(self, Bucket, Key):
        raise client_error("NoSuchKey", "DeleteObject")


@pytest.fixture
def s3_store():
    store = S3ObjectStore("media", public_base="https://cdn.example.com/")
    store.s3 = FakeS3Client({"posts/a.mp3": b"audio"})
    return store


class TestS3ObjectStore:
    """Test ClientError translation."""

    def test_get(self, s3_store):
        assert s3_store.get("posts/a.mp3") == b"audio"

    def test_missing_is_none(self, s3_store):
        assert s3_store.get("posts/none.mp3") is None

    def test_other_errors_raised(self, s3_store):
        s3_store.s3.error = client_error("AccessDenied")
        with pytest.raises(ClientError):
            s3_store.get("posts/a.mp3")

    def test_put_content_type(self, s3_store):
        s3_store.put("shorts/_jobs.json", b"{}", "application/json")
        assert s3_store.s3.puts == [("shorts/_jobs.json", "application/json")]

    def test_download_missing(self, s3_store, tmp_path):
        assert s3_store.download_file("audio/none.mp3", str(tmp_path / "x")) is False
        assert s3_store.download_file("posts/a.mp3", str(tmp_path / "a")) is True

    def test_delete_missing_ignored(self, s3_store):
        s3_store.delete("posts/none.mp3")

    def test_public_url(self, s3_store):
        assert s3_store.public_url("shorts/a.mp4") == "https://cdn.example.com/shorts/a.mp4"
        assert S3ObjectStore("media").public_url("shorts/a.mp4") == "/uploads/shorts/a.mp4"
