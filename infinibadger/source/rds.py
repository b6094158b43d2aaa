"""Amazon RDS log source built on boto3."""

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from infinibadger.exceptions import FetchError, SourceUnavailableError
from infinibadger.resilience import RetryConfig, retry_operation
from infinibadger.source.base import LogFileDescriptor, LogPortion, LogSource

logger = logging.getLogger(__name__)

_REMOTE_ERRORS = (BotoCoreError, ClientError)


def build_rds_client(
    region: str,
    access_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> Any:
    """Build a boto3 RDS client.

    Static credentials are used only when both the access key and the secret
    key are given; otherwise boto3 falls back to its default credential chain
    (environment, shared config, instance profile).
    """
    session_kwargs: Dict[str, Any] = {}
    if access_key and secret_key:
        session_kwargs["aws_access_key_id"] = access_key
        session_kwargs["aws_secret_access_key"] = secret_key

    session = boto3.Session(region_name=region, **session_kwargs)
    client = session.client("rds", endpoint_url=endpoint_url)
    logger.debug("Created RDS client in %s with endpoint: %s", region, endpoint_url or "default")
    return client


class RDSLogSource(LogSource):
    """Log source backed by ``DescribeDBLogFiles`` / ``DownloadDBLogFilePortion``."""

    def __init__(self, client: Any, instance: str, retry: Optional[RetryConfig] = None):
        """
        Args:
            client: boto3 RDS client
            instance: DB instance identifier
            retry: Retry configuration for remote calls (default: no retry)
        """
        if not instance:
            raise ValueError("instance is required")
        self.client = client
        self.instance = instance
        self.retry = retry or RetryConfig.none()

    @classmethod
    def from_config(cls, source_cfg: Any) -> "RDSLogSource":
        """Create a source from a :class:`~infinibadger.config.SourceConfig`."""
        client = build_rds_client(
            region=source_cfg.region,
            access_key=source_cfg.access_key,
            secret_key=source_cfg.secret_key,
            endpoint_url=source_cfg.endpoint_url,
        )
        retry = RetryConfig(
            max_attempts=source_cfg.retry_attempts,
            retry_exceptions=_REMOTE_ERRORS,
        )
        return cls(client, source_cfg.instance, retry=retry)

    def list_files(self, since: int) -> List[LogFileDescriptor]:
        params = {
            "DBInstanceIdentifier": self.instance,
            "FileLastWritten": since,
        }
        try:
            response = retry_operation(
                lambda: self.client.describe_db_log_files(**params),
                self.retry,
                "describe_db_log_files",
            )
        except _REMOTE_ERRORS as e:
            raise SourceUnavailableError(
                f"Failed to list log files: {e}",
                instance=self.instance,
                since=since,
                original_error=e,
            ) from e

        files = [
            LogFileDescriptor(
                name=entry["LogFileName"],
                size=int(entry.get("Size", 0)),
                last_written=int(entry.get("LastWritten", 0)),
            )
            for entry in response.get("DescribeDBLogFiles", [])
        ]
        logger.debug("Listed %d log files written since %d", len(files), since)
        return files

    def fetch_portion(self, name: str, marker: str) -> LogPortion:
        params = {
            "DBInstanceIdentifier": self.instance,
            "LogFileName": name,
            "Marker": marker,
        }
        try:
            response = retry_operation(
                lambda: self.client.download_db_log_file_portion(**params),
                self.retry,
                "download_db_log_file_portion",
            )
        except _REMOTE_ERRORS as e:
            raise FetchError(
                f"Failed to download log file portion: {e}",
                log_file=name,
                marker=marker,
                original_error=e,
            ) from e

        return LogPortion(
            data=response.get("LogFileData"),
            marker=response.get("Marker", marker),
            additional_data_pending=bool(response.get("AdditionalDataPending", False)),
        )
