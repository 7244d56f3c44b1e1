"""Unit tests for MinIO/S3 fixture.

Tests for testing.fixtures.minio module including MinIOConfig, client
utilities and MinIOObjectLister. The MinIO client is mocked throughout.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr, ValidationError

from floe_conformance.protocols import ObjectLister
from testing.fixtures.minio import (
    MinIOConfig,
    MinIOConnectionError,
    MinIOObjectLister,
    create_minio_client,
    ensure_bucket,
)


def _listed(*keys: str) -> list[MagicMock]:
    return [MagicMock(object_name=key) for key in keys]


class TestMinIOConfig:
    """Tests for MinIOConfig model."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            config = MinIOConfig()
        assert config.endpoint == "localhost:9000"
        assert config.access_key == "minioadmin"
        assert config.secure is False
        assert config.region == "us-east-1"

    def test_config_from_env(self) -> None:
        """Test config reads from environment variables."""
        with patch.dict(
            os.environ,
            {
                "MINIO_ENDPOINT": "minio:9001",
                "AWS_ACCESS_KEY_ID": "env_key",
                "AWS_SECRET_ACCESS_KEY": "env_secret",
                "AWS_REGION": "eu-west-1",
            },
        ):
            config = MinIOConfig()
        assert config.endpoint == "minio:9001"
        assert config.access_key == "env_key"
        assert config.secret_key.get_secret_value() == "env_secret"
        assert config.region == "eu-west-1"

    def test_secret_key_is_secret(self) -> None:
        """Test secret key is SecretStr type."""
        config = MinIOConfig(secret_key=SecretStr("secret123"))
        assert isinstance(config.secret_key, SecretStr)
        assert "secret123" not in repr(config)

    def test_frozen_model(self) -> None:
        """Test MinIOConfig is immutable."""
        config = MinIOConfig()
        with pytest.raises(Exception):  # noqa: B017
            config.endpoint = "other:9000"  # type: ignore[misc]

    def test_rejects_unknown_fields(self) -> None:
        """Test unknown settings are rejected."""
        with pytest.raises(ValidationError):
            MinIOConfig(namespace="floe-test")  # type: ignore[call-arg]


class TestClientHelpers:
    """Tests for client creation and bucket helpers."""

    def test_create_minio_client(self) -> None:
        """Test client is built from config with the plain secret."""
        config = MinIOConfig(
            endpoint="minio:9000",
            access_key="key",
            secret_key=SecretStr("secret"),
        )
        with patch("minio.Minio") as mock_minio:
            client = create_minio_client(config)
        assert client is mock_minio.return_value
        mock_minio.assert_called_once_with(
            endpoint="minio:9000",
            access_key="key",
            secret_key="secret",
            secure=False,
            region=config.region,
        )

    def test_create_minio_client_failure(self) -> None:
        """Test client construction errors are wrapped."""
        with patch("minio.Minio", side_effect=ValueError("bad endpoint")):
            with pytest.raises(MinIOConnectionError, match="bad endpoint"):
                create_minio_client(MinIOConfig(endpoint="::"))

    def test_lister_from_config(self) -> None:
        """Test from_config builds the client from a default config."""
        with patch("testing.fixtures.minio.create_minio_client") as mock_create:
            lister = MinIOObjectLister.from_config(scheme="s3a")
        assert isinstance(mock_create.call_args.args[0], MinIOConfig)
        assert lister.scheme == "s3a"
        assert isinstance(lister, ObjectLister)

    def test_ensure_bucket_creates_missing(self) -> None:
        """Test a missing bucket is created in the given region."""
        client = MagicMock()
        client.bucket_exists.return_value = False
        assert ensure_bucket(client, "lake", region="eu-west-1") is True
        client.make_bucket.assert_called_once_with("lake", location="eu-west-1")

    def test_ensure_bucket_existing(self) -> None:
        """Test an existing bucket is left alone."""
        client = MagicMock()
        client.bucket_exists.return_value = True
        assert ensure_bucket(client, "lake") is False
        client.make_bucket.assert_not_called()


class TestMinIOObjectLister:
    """Tests for MinIOObjectLister."""

    def test_is_object_lister(self) -> None:
        """Test the lister satisfies the harness protocol."""
        assert isinstance(MinIOObjectLister(MagicMock()), ObjectLister)

    def test_lists_recursively_and_qualifies_keys(self) -> None:
        """Test keys are listed recursively and returned as full locations."""
        client = MagicMock()
        client.list_objects.return_value = _listed(
            "sch//double_slash/t/data/a.parquet",
            "sch//double_slash/t/metadata/00001.metadata.json",
        )
        files = MinIOObjectLister(client).list_objects("lake", "sch//double_slash/t/")

        client.list_objects.assert_called_once_with(
            "lake", prefix="sch//double_slash/t/", recursive=True
        )
        assert files == {
            "s3://lake/sch//double_slash/t/data/a.parquet",
            "s3://lake/sch//double_slash/t/metadata/00001.metadata.json",
        }

    def test_scheme_used_for_qualification(self) -> None:
        """Test the configured scheme prefixes listed keys."""
        client = MagicMock()
        client.list_objects.return_value = _listed("sch/t /data/a.parquet")
        files = MinIOObjectLister(client, scheme="s3a").list_objects("lake", "sch/t /")
        assert files == {"s3a://lake/sch/t /data/a.parquet"}

    def test_empty_listing(self) -> None:
        """Test nothing under the prefix yields an empty set."""
        client = MagicMock()
        client.list_objects.return_value = iter(())
        assert MinIOObjectLister(client).list_objects("lake", "sch/t/") == set()

    def test_failure_during_iteration(self) -> None:
        """Test errors raised while paging are wrapped."""

        def pages() -> Iterator[MagicMock]:
            yield from _listed("sch/t/data/a.parquet")
            raise OSError("connection reset")

        client = MagicMock()
        client.list_objects.return_value = pages()
        with pytest.raises(MinIOConnectionError, match="connection reset"):
            MinIOObjectLister(client).list_objects("lake", "sch/t/")
