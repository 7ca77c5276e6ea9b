"""Track temporary documents and delete them after a delay."""

import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class TempFileRegistry:
    """Registry of temporary files handed to the presentation host.

    The host opens the file asynchronously, so deletion is scheduled
    rather than immediate.
    """

    def __init__(self, delay_seconds: float = 60.0, enabled: bool = True) -> None:
        """Initialize the registry.

        Args:
            delay_seconds: Wait before a scheduled deletion runs.
            enabled: When False, ``schedule_cleanup`` only tracks files.
        """
        self.delay_seconds = delay_seconds
        self.enabled = enabled
        self._files: set[Path] = set()
        self._timers: dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()

    def track(self, path: Path | str) -> Path:
        """Register a file for later cleanup."""
        path = Path(path)
        with self._lock:
            self._files.add(path)
        return path

    def schedule_cleanup(self, path: Path | str, delay_seconds: float | None = None) -> Path:
        """Track a file and delete it once the delay has passed.

        Args:
            path: Temporary file.
            delay_seconds: Override the registry's default delay.

        Returns:
            The tracked path.
        """
        path = self.track(path)
        if not self.enabled:
            return path

        delay = self.delay_seconds if delay_seconds is None else delay_seconds
        timer = threading.Timer(delay, self.cleanup, args=(path,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(path, None)
            self._timers[path] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        return path

    def cleanup(self, path: Path | str) -> bool:
        """Delete one tracked file now.

        Returns:
            True if the file was deleted or was already gone.
        """
        path = Path(path)
        with self._lock:
            self._files.discard(path)
            timer = self._timers.pop(path, None)
        if timer is not None and timer is not threading.current_thread():
            timer.cancel()

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete temp file {path}: {e}")
            return False
        logger.debug(f"Deleted temp file {path}")
        return True

    def cleanup_all(self) -> int:
        """Delete every tracked file.

        Returns:
            Number of files deleted.
        """
        with self._lock:
            pending = list(self._files)
        return sum(1 for path in pending if self.cleanup(path))

    @property
    def active_count(self) -> int:
        """Number of files still awaiting deletion."""
        with self._lock:
            return len(self._files)
