"""Durable checkpoint for :class:`DownloadState`.

Without a store the download state only lives in memory and a restart
re-lists every log file from watermark 0. Configuring ``state_file`` keeps the
state across restarts, either on the local filesystem or in S3:

- ``/var/lib/infinibadger/state.json``
- ``s3://bucket/prefix/state.json``

State file structure:
```json
{
  "watermark": 1704067200000,
  "current_file": "error/postgresql.log.2024-01-01-00",
  "marker": "4:2048",
  "bytes_written": 2048,
  "updated_at": "2024-01-01T00:15:00Z"
}
```
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from infinibadger.exceptions import StateManagementError
from infinibadger.state.download_state import DownloadState
from infinibadger.time_utils import utc_isoformat

logger = logging.getLogger(__name__)

__all__ = ["StateStore"]


class StateStore:
    """Load and save a single download state record."""

    def __init__(self, location: str, s3_client: Optional[Any] = None):
        """Initialize state store.

        Args:
            location: Local path or ``s3://bucket/key`` URI
            s3_client: Optional boto3 S3 client (created lazily otherwise)
        """
        self.location = location
        self.storage_backend = "s3" if location.startswith("s3://") else "local"
        self._s3_client = s3_client

    @staticmethod
    def _parse_s3_path(path: str) -> Tuple[str, str]:
        """Split ``s3://bucket/key`` into bucket and key."""
        clean = path.replace("s3://", "", 1)
        parts = clean.split("/", 1)
        bucket = parts[0]
        key = parts[1] if len(parts) > 1 else ""
        if not bucket or not key:
            raise StateManagementError("S3 state location needs a bucket and a key", state_file=path)
        return bucket, key

    @property
    def s3_client(self) -> Any:
        if self._s3_client is None:
            import boto3

            self._s3_client = boto3.client("s3")
        return self._s3_client

    def load(self) -> DownloadState:
        """Return the stored state, or a fresh one if nothing usable is stored.

        Raises:
            StateManagementError: if the storage backend cannot be read
        """
        try:
            if self.storage_backend == "s3":
                raw = self._read_s3()
            else:
                raw = self._read_local()
        except FileNotFoundError:
            logger.info("No saved download state at %s, starting fresh", self.location)
            return DownloadState()

        try:
            state = DownloadState.from_dict(self._parse(raw))
        except StateManagementError as e:
            logger.warning("Ignoring unusable download state at %s: %s", self.location, e)
            return DownloadState()

        logger.info("Loaded download state from %s: %s", self.location, state.to_dict())
        return state

    def save(self, state: DownloadState) -> None:
        """Persist the state.

        Raises:
            StateManagementError: if the state cannot be written
        """
        data = state.to_dict()
        data["updated_at"] = utc_isoformat()
        try:
            if self.storage_backend == "s3":
                self._save_s3(data)
            else:
                self._save_local(data)
        except StateManagementError:
            raise
        except Exception as e:
            raise StateManagementError(
                "Failed to save download state", state_file=self.location, original_error=e
            ) from e

    def _parse(self, raw: bytes) -> Dict[str, Any]:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StateManagementError(
                "Could not parse download state", state_file=self.location, original_error=e
            ) from e

    def _read_local(self) -> bytes:
        path = Path(self.location)
        if not path.exists():
            raise FileNotFoundError(f"State file not found: {path}")

        try:
            return path.read_bytes()
        except OSError as e:
            raise StateManagementError(
                "Could not read download state", state_file=str(path), original_error=e
            ) from e

    def _save_local(self, data: Dict[str, Any]) -> None:
        path = Path(self.location)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file first so a crash never leaves half a record
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug("Saved download state to %s", path)

    def _read_s3(self) -> bytes:
        bucket, key = self._parse_s3_path(self.location)
        s3 = self.s3_client
        try:
            response = s3.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except s3.exceptions.NoSuchKey:
            raise FileNotFoundError(f"S3 object not found: s3://{bucket}/{key}") from None
        except (BotoCoreError, ClientError) as e:
            raise StateManagementError(
                "Could not read download state", state_file=self.location, original_error=e
            ) from e

    def _save_s3(self, data: Dict[str, Any]) -> None:
        bucket, key = self._parse_s3_path(self.location)
        self.s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=json.dumps(data, indent=2).encode("utf-8"),
        )
        logger.debug("Saved download state to s3://%s/%s", bucket, key)
