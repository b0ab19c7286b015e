"""Per-batch log file written through a dedicated loguru sink."""

from __future__ import annotations

import os
import uuid
from datetime import datetime
from typing import Optional

from loguru import logger

from ..models.optimization import ErrorKind, RunOutcome

LINE_FORMAT = "{time:M/D/YY hh:mm:ss A}: {message}"


class BatchLog:
    """Mirrors batch events into ``<log_dir>/<timestamp>_<user>_log.txt``.

    Events always reach the process logger; the file is best effort and a
    failure to create it never stops the batch.
    """

    def __init__(self, log_dir: str):
        self.log_dir = os.path.abspath(log_dir)
        self.path: Optional[str] = None
        self._token = uuid.uuid4().hex
        self._sink_id: Optional[int] = None
        self._logger = logger.bind(batch_log=self._token)

    @property
    def active(self) -> bool:
        return self._sink_id is not None

    def check_folder(self) -> RunOutcome:
        if os.path.isdir(self.log_dir):
            return RunOutcome.ok("Log will be saved.")
        return RunOutcome.fail(ErrorKind.config_warning, "Logs folder unavailable, no log will be saved.")

    def start(self, user_id: str) -> Optional[str]:
        if self.active:
            self.end()
        if not self.check_folder().succeeded:
            logger.warning("Log folder {} unavailable, no batch log will be saved", self.log_dir)
            return None
        file_name = f"{datetime.now():%Y%m%d%H%M%S}_{user_id}_log.txt"
        path = os.path.join(self.log_dir, file_name)
        token = self._token
        try:
            self._sink_id = logger.add(
                path,
                format=LINE_FORMAT,
                level="INFO",
                filter=lambda record: record["extra"].get("batch_log") == token,
                encoding="utf-8",
            )
        except (OSError, ValueError) as exc:
            logger.warning("Cannot create batch log {}: {}", path, exc)
            return None
        self.path = path
        return path

    def write(self, text: str, failed: bool = False) -> None:
        if failed:
            self._logger.warning(text)
        else:
            self._logger.info(text)

    def end(self) -> None:
        if self._sink_id is None:
            return
        sink_id, self._sink_id = self._sink_id, None
        try:
            logger.remove(sink_id)
        except ValueError as exc:
            logger.warning("Batch log sink already removed: {}", exc)
