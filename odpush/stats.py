"""Statistics tracking for odpush."""

import threading
from datetime import datetime


def _empty_stats():
    return {
        "total_files": 0,
        "successful_uploads": 0,
        "failed_uploads": 0,
        "chunks_sent": 0,
        "chunk_retries": 0,
        "token_refreshes": 0,
        "total_size": 0,
        "uploaded_size": 0,
        "start_time": datetime.now(),
    }


class OperationStats:
    """Thread-safe counters shared by every upload on a client."""

    def __init__(self):
        self._lock = threading.Lock()
        self.stats = _empty_stats()

    def update(self, **kwargs):
        """Thread-safe method to update statistics."""
        with self._lock:
            for key, value in kwargs.items():
                if key in self.stats:
                    self.stats[key] += value

    def get_stats(self):
        """Get a copy of current statistics."""
        with self._lock:
            return self.stats.copy()

    def reset(self):
        with self._lock:
            self.stats = _empty_stats()

    def get_success_rate(self):
        """Calculate success rate as a percentage."""
        stats = self.get_stats()
        attempted = stats["successful_uploads"] + stats["failed_uploads"]
        if attempted == 0:
            return 0.0
        return stats["successful_uploads"] / attempted * 100

    def get_duration(self):
        return datetime.now() - self.get_stats()["start_time"]

    def get_transfer_speed_mb_per_sec(self):
        """Calculate transfer speed in MB/s."""
        seconds = self.get_duration().total_seconds()
        if seconds == 0:
            return 0.0
        return self.get_stats()["uploaded_size"] / 1024 / 1024 / seconds
