"""infinibadger: incremental RDS PostgreSQL log download feeding pgBadger."""

__version__ = "0.2.0"
