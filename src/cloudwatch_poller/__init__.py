"""
CloudWatch Log Poller

Discovers CloudWatch log groups and streams, reads new events incrementally
with per-stream checkpoints, and hands them to a downstream record sink.
"""

__version__ = "0.1.0"
