from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from coreason_runner.config import RunnerConfig
from coreason_runner.storage import S3Storage


@pytest.fixture
def mock_boto3() -> Any:
    with patch("coreason_runner.storage.boto3") as mock:
        yield mock


def test_s3_storage_init(mock_boto3: Any) -> None:
    storage = S3Storage(bucket="my-bucket", region="us-east-1")
    mock_boto3.client.assert_called_with(
        "s3",
        region_name="us-east-1",
        aws_access_key_id=None,
        aws_secret_access_key=None,
        endpoint_url=None,
    )
    assert storage.bucket == "my-bucket"


def test_from_config(mock_boto3: Any) -> None:
    assert S3Storage.from_config(RunnerConfig()) is None

    storage = S3Storage.from_config(RunnerConfig(s3_bucket="outputs", s3_endpoint_url="http://minio:9000"))

    assert storage is not None
    assert storage.bucket == "outputs"
    assert mock_boto3.client.call_args.kwargs["endpoint_url"] == "http://minio:9000"


@pytest.mark.asyncio
async def test_s3_upload_success(mock_boto3: Any, tmp_path: Path) -> None:
    storage = S3Storage(bucket="my-bucket", key_prefix="runs/")
    mock_client = mock_boto3.client.return_value
    mock_client.generate_presigned_url.return_value = "https://s3/url"

    test_file = tmp_path / "test.txt"
    test_file.write_text("content")

    url = await storage.upload_file(test_file, "remote.txt", "workspace-abc")

    mock_client.upload_file.assert_called_with(str(test_file), "my-bucket", "runs/workspace-abc/remote.txt")
    assert mock_client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 3600
    assert url == "https://s3/url"


@pytest.mark.asyncio
async def test_s3_upload_file_not_found(mock_boto3: Any) -> None:
    storage = S3Storage(bucket="my-bucket")
    with pytest.raises(FileNotFoundError):
        await storage.upload_file(Path("nonexistent"), "key")


@pytest.mark.asyncio
async def test_s3_upload_client_error(mock_boto3: Any, tmp_path: Path) -> None:
    storage = S3Storage(bucket="my-bucket")
    mock_client = mock_boto3.client.return_value
    mock_client.upload_file.side_effect = ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "PutObject")

    test_file = tmp_path / "test.txt"
    test_file.write_text("content")

    with pytest.raises(ClientError):
        await storage.upload_file(test_file, "key")


def test_object_key() -> None:
    with patch("coreason_runner.storage.boto3"):
        storage = S3Storage(bucket="b")

    assert storage.object_key("a.txt") == "a.txt"
    assert storage.object_key("a.txt", "ws") == "ws/a.txt"
