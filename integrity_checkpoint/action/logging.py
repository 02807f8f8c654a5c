"""BuildLogSink that mirrors the build log to a Python logger and a file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


class FileBuildLogSink:
    """Writes build log output to a logger and appends it to a log file.

    stdout lines are logged at INFO and stderr lines at ERROR. If the log file
    cannot be opened the sink keeps logging to the logger only.
    """

    def __init__(self, build_logger: logging.Logger, log_file_path: Path) -> None:
        """Initialize sink.

        Args:
            build_logger: Logger receiving one record per non-empty line
            log_file_path: File the raw output is appended to
        """
        self.build_logger = build_logger
        self.log_file_path = log_file_path
        self._file_handle: Optional[BinaryIO] = None

        try:
            self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(self.log_file_path, "ab")
        except OSError as exc:
            logger.warning(
                "Failed to open build log %s: %s. Continuing with logger only.",
                self.log_file_path,
                exc,
            )
            self._file_handle = None

    def write_stdout(self, data: bytes) -> None:
        self._write(data, logging.INFO)

    def write_stderr(self, data: bytes) -> None:
        self._write(data, logging.ERROR)

    def _write(self, data: bytes, level: int) -> None:
        if not data:
            return

        text = data.decode("utf-8", errors="replace")
        for line in text.splitlines():
            if line.strip():
                self.build_logger.log(level, line)

        if self._file_handle:
            try:
                self._file_handle.write(data)
                self._file_handle.flush()
            except OSError as exc:
                logger.warning("Error writing build log %s: %s", self.log_file_path, exc)

    def close(self) -> None:
        """Close the log file. Further output only reaches the logger."""
        handle, self._file_handle = self._file_handle, None
        if handle:
            try:
                handle.close()
            except OSError as exc:
                logger.debug("Error closing build log %s: %s", self.log_file_path, exc)

    def __enter__(self) -> "FileBuildLogSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
