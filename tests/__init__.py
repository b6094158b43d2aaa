"""infinibadger test suite.

- test_fetch.py: download loop (resume, truncation, size-driven termination, watermark)
- test_download_state.py / test_state_store.py: state record and checkpoint
- test_rds_source.py: boto3 adapter, stubbed with botocore's Stubber
- test_scheduler.py: cycle isolation and temp file cleanup
- test_analysis.py / test_publisher.py: pgBadger trigger and report server
- test_config.py / test_cli.py: configuration and command line
"""
