"""Run logging: console, buffered main and cycle files, alerts, retention."""

from __future__ import annotations

import logging
import time
from logging.handlers import MemoryHandler
from pathlib import Path

import rich_click as click

from opencoder.workdir import WorkspacePaths

ROOT_LOGGER_NAME = "opencoder"
FILE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_STYLES: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("[VERBOSE] ", None),
    logging.WARNING: ("[WARN] ", "yellow"),
    logging.ERROR: ("[ERROR] ", "red"),
    logging.CRITICAL: ("[FATAL] ", "red"),
}


class ConsoleHandler(logging.Handler):
    """Echo records through click; warnings and errors go to stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            prefix, color = _LEVEL_STYLES.get(record.levelno, ("", None))
            click.secho(
                f"{prefix}{message}",
                fg=color,
                dim=record.levelno == logging.DEBUG,
                err=record.levelno >= logging.WARNING,
            )
        except Exception:  # noqa: BLE001
            self.handleError(record)


class SizeBufferedHandler(MemoryHandler):
    """Buffer records until roughly ``buffer_bytes`` of text or an ERROR record."""

    def __init__(self, target: logging.Handler, *, buffer_bytes: int) -> None:
        super().__init__(capacity=0, flushLevel=logging.ERROR, target=target)
        self.buffer_bytes = buffer_bytes
        self._buffered = 0

    def shouldFlush(self, record: logging.LogRecord) -> bool:  # noqa: N802
        self._buffered += len(record.getMessage()) + len(FILE_FORMAT)
        return self._buffered >= self.buffer_bytes or record.levelno >= self.flushLevel

    def flush(self) -> None:
        super().flush()
        self._buffered = 0


class RunLog:
    """Owns the handlers attached to the ``opencoder`` logger for one run."""

    def __init__(
        self,
        paths: WorkspacePaths,
        *,
        verbose: bool = False,
        buffer_bytes: int = 2048,
        console: bool = True,
    ) -> None:
        self.paths = paths
        self.verbose = verbose
        self.buffer_bytes = buffer_bytes
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self._formatter = logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT)
        self._handlers: list[logging.Handler] = []
        self._cycle_handler: SizeBufferedHandler | None = None
        self._previous_level = self.logger.level
        self._previous_propagate = self.logger.propagate

        paths.logs_dir.mkdir(parents=True, exist_ok=True)
        paths.cycle_log_dir.mkdir(parents=True, exist_ok=True)

        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        if console:
            console_handler = ConsoleHandler()
            console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            self._attach(console_handler)

        self._attach(self._buffered_file_handler(paths.main_log))

        alerts_handler = logging.FileHandler(paths.alerts_file, encoding="utf-8")
        alerts_handler.setLevel(logging.ERROR)
        alerts_handler.setFormatter(self._formatter)
        self._attach(alerts_handler)

    def __enter__(self) -> RunLog:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def set_cycle(self, cycle: int) -> Path:
        """Route subsequent records to ``cycles/cycle_NNN.log`` as well."""

        if self._cycle_handler is not None:
            self._detach(self._cycle_handler)
        path = self.paths.cycle_log(cycle)
        self._cycle_handler = self._buffered_file_handler(path)
        self._attach(self._cycle_handler)
        return path

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def cleanup(self, retention_days: int) -> int:
        """Delete cycle logs older than ``retention_days``; return how many."""

        cutoff = time.time() - retention_days * 24 * 60 * 60
        deleted = 0
        if not self.paths.cycle_log_dir.exists():
            return deleted
        active = self._cycle_handler.target if self._cycle_handler is not None else None
        active_path = Path(active.baseFilename) if isinstance(active, logging.FileHandler) else None
        for path in self.paths.cycle_log_dir.iterdir():
            if not path.is_file() or path == active_path:
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
            except OSError as error:
                self.logger.warning("Could not remove old cycle log %s: %s", path, error)
        return deleted

    def close(self) -> None:
        for handler in list(self._handlers):
            self._detach(handler)
        self._cycle_handler = None
        self.logger.setLevel(self._previous_level)
        self.logger.propagate = self._previous_propagate

    def _buffered_file_handler(self, path: Path) -> SizeBufferedHandler:
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(self._formatter)
        return SizeBufferedHandler(file_handler, buffer_bytes=self.buffer_bytes)

    def _attach(self, handler: logging.Handler) -> None:
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def _detach(self, handler: logging.Handler) -> None:
        self.logger.removeHandler(handler)
        if handler in self._handlers:
            self._handlers.remove(handler)
        handler.flush()
        if isinstance(handler, MemoryHandler) and handler.target is not None:
            handler.target.close()
        handler.close()
