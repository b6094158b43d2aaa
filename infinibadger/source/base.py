"""Remote log source abstraction.

The fetch loop only needs two calls from a log source: list the log files
written at or after a timestamp, and fetch one portion of a file starting at a
continuation marker. :class:`RDSLogSource` implements them on top of the RDS
API; tests use an in-memory implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class LogFileDescriptor:
    """One entry of a listing call."""

    name: str
    size: int
    last_written: int


@dataclass(frozen=True)
class LogPortion:
    """Result of a single portion fetch.

    ``additional_data_pending`` is reported by RDS but is known to return
    False while data is still left, so the fetch loop never relies on it.
    """

    data: Optional[str]
    marker: str
    additional_data_pending: bool = False


class LogSource(ABC):
    """Abstract base class for remote log sources."""

    @abstractmethod
    def list_files(self, since: int) -> List[LogFileDescriptor]:
        """List log files last written at or after ``since``.

        Args:
            since: Lower bound timestamp (the download watermark)

        Returns:
            Descriptors in the order the source reports them

        Raises:
            SourceUnavailableError: If the listing call fails
        """

    @abstractmethod
    def fetch_portion(self, name: str, marker: str) -> LogPortion:
        """Fetch the portion of ``name`` that starts at ``marker``.

        Raises:
            FetchError: If the remote call fails
        """
