"""
Metrics collection for Dropbox API usage.

RequestMetrics is an optional collector the DropboxClient reports into:
- Call counts per API route
- Error counts per API route and per error class
- Retry counts (rate limiting, server errors, connection failures)
- Bytes uploaded and downloaded
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional


class RequestMetrics:
    """Collects and aggregates metrics for Dropbox API requests."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        self.api_calls: Dict[str, int] = {}
        self.errors: Dict[str, int] = {}
        self.error_types: Dict[str, int] = {}
        self.retries = 0
        self.token_refreshes = 0

        self.bytes_uploaded = 0
        self.bytes_downloaded = 0

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def start_collection(self) -> None:
        self.start_time = datetime.now()

    def end_collection(self) -> None:
        self.end_time = datetime.now()

    def record_call(self, route: str) -> None:
        """Count one call of an API route."""
        self.api_calls[route] = self.api_calls.get(route, 0) + 1

    def record_error(self, route: str, error: Exception) -> None:
        """
        Count a failed call.

        Args:
            route: API route that failed
            error: Exception raised for the failure
        """
        self.errors[route] = self.errors.get(route, 0) + 1
        name = type(error).__name__
        self.error_types[name] = self.error_types.get(name, 0) + 1

    def record_retry(self) -> None:
        self.retries += 1

    def record_token_refresh(self) -> None:
        self.token_refreshes += 1

    def record_upload(self, num_bytes: int) -> None:
        self.bytes_uploaded += num_bytes

    def record_download(self, num_bytes: int) -> None:
        self.bytes_downloaded += num_bytes

    def get_summary(self) -> Dict[str, Any]:
        """Snapshot the counters as a JSON-serializable dict."""
        summary: Dict[str, Any] = {
            "generated_at": datetime.now().isoformat(),
            "duration_seconds": None,
            "api_calls": dict(self.api_calls),
            "total_api_calls": sum(self.api_calls.values()),
            "errors": dict(self.errors),
            "total_errors": sum(self.errors.values()),
            "error_types": dict(self.error_types),
            "retries": self.retries,
            "token_refreshes": self.token_refreshes,
            "transfer": {
                "bytes_uploaded": self.bytes_uploaded,
                "bytes_downloaded": self.bytes_downloaded,
            },
        }

        if self.start_time is not None and self.end_time is not None:
            summary["duration_seconds"] = (self.end_time - self.start_time).total_seconds()

        return summary

    def log_summary(self, logger: Optional[logging.Logger] = None) -> None:
        """Write the summary as an INFO report to ``logger`` (module logger by default)."""
        log = logger or self.logger
        summary = self.get_summary()

        log.info("=" * 70)
        log.info("Dropbox API Metrics Summary")
        log.info("=" * 70)

        log.info("API Calls:")
        for route, count in sorted(summary["api_calls"].items()):
            log.info(f"  {route}: {count}")
        log.info(f"  Total API calls: {summary['total_api_calls']}")
        log.info("")

        if summary["total_errors"]:
            log.info("Errors:")
            for route, count in sorted(summary["errors"].items()):
                log.info(f"  {route}: {count}")
            for name, count in sorted(summary["error_types"].items()):
                log.info(f"  [{name}] {count}")
            log.info("")

        log.info(f"Retries: {summary['retries']}")
        log.info(f"Token refreshes: {summary['token_refreshes']}")
        log.info(f"Bytes uploaded: {summary['transfer']['bytes_uploaded']}")
        log.info(f"Bytes downloaded: {summary['transfer']['bytes_downloaded']}")
        log.info("=" * 70)

    def save_to_file(self, filepath: str) -> None:
        """Dump the summary to ``filepath`` as indented JSON, creating parent directories."""
        os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)

        try:
            with open(filepath, "w") as out:
                json.dump(self.get_summary(), out, indent=2)
        except OSError as e:
            self.logger.error(f"Could not write metrics file {filepath}: {e}")
            return
        self.logger.info(f"Wrote API metrics to {filepath}")
