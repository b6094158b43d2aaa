"""Remote log sources."""

from infinibadger.source.base import LogFileDescriptor, LogPortion, LogSource
from infinibadger.source.rds import RDSLogSource, build_rds_client

__all__ = [
    "LogFileDescriptor",
    "LogPortion",
    "LogSource",
    "RDSLogSource",
    "build_rds_client",
]
