"""Sources of flag configuration that feed payloads into a queue."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 0.1


class QueuePayloadType(enum.Enum):
    """Whether a payload carries flag data or an error description."""

    DATA = "data"
    ERROR = "error"


@dataclass
class QueuePayload:
    """One message from a connector: flag configuration text or an error text."""

    payload_type: QueuePayloadType
    flag_data: str
    metadata: dict[str, Any] | None = None


class Connector(ABC):
    """A source of flag configuration; payloads arrive on ``stream``."""

    stream: asyncio.Queue[QueuePayload]

    @abstractmethod
    async def init(self) -> None:
        """Start delivering payloads."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Stop delivering payloads."""


class FileConnector(Connector):
    """Reads a flag configuration file and re-reads it at a fixed interval."""

    def __init__(
        self, path: str | Path, poll_interval: float = _DEFAULT_POLL_INTERVAL
    ) -> None:
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.stream: asyncio.Queue[QueuePayload] = asyncio.Queue(maxsize=1)
        self._stopped = False
        self._watcher: asyncio.Task[None] | None = None

    async def _read(self) -> str:
        return await asyncio.to_thread(self.path.read_text, encoding="utf-8")

    async def init(self) -> None:
        """Send the file contents immediately, then start polling the file."""
        content = await self._read()
        await self.stream.put(QueuePayload(QueuePayloadType.DATA, content))
        self._watcher = asyncio.create_task(self._watch())

    async def _watch(self) -> None:
        while not self._stopped:
            try:
                content = await self._read()
            except (OSError, UnicodeDecodeError) as exc:
                log.error("File not found or inaccessible: %s", exc)
                payload = QueuePayload(QueuePayloadType.ERROR, str(exc))
            else:
                log.debug("Read flag file, sending update")
                payload = QueuePayload(QueuePayloadType.DATA, content)
            await self.stream.put(payload)
            await asyncio.sleep(self.poll_interval)

    async def shutdown(self) -> None:
        """Stop polling the file."""
        self._stopped = True
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher