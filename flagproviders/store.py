"""In-memory flag storage kept up to date from a connector."""

from __future__ import annotations

import asyncio
import contextlib
import copy
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from .connector import Connector, QueuePayloadType
from .model import FeatureFlag, ParsingResult, parse_string

log = logging.getLogger(__name__)

_INITIAL_SYNC_TIMEOUT = 5.0
_STATE_QUEUE_SIZE = 1000


class StoreError(Exception):
    """Raised when the store cannot obtain its initial flag configuration."""


class StorageState(enum.Enum):
    """Health of the stored configuration."""

    OK = "ok"
    STALE = "stale"
    ERROR = "error"


@dataclass
class StorageStateChange:
    """Notification that the store received an update or an error."""

    storage_state: StorageState
    changed_flags_keys: list[str] = field(default_factory=list)
    sync_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class StorageQueryResult:
    """A looked-up flag (or None) and the flag set metadata."""

    feature_flag: FeatureFlag | None
    flag_set_metadata: dict[str, Any]


class FlagStore:
    """Holds the current flags and applies updates arriving from a connector.

    State changes after the initial sync are published on ``state_changes``.
    """

    def __init__(self, connector: Connector) -> None:
        self.connector = connector
        self.state_changes: asyncio.Queue[StorageStateChange] = asyncio.Queue(
            maxsize=_STATE_QUEUE_SIZE
        )
        self._flags: dict[str, FeatureFlag] = {}
        self._flag_set_metadata: dict[str, Any] = {}
        self._listener: asyncio.Task[None] | None = None

    def _apply(self, result: ParsingResult) -> None:
        self._flags = result.flags
        self._flag_set_metadata = result.flag_set_metadata

    async def init(self) -> None:
        """Start the connector, load the first configuration and listen for updates."""
        log.debug("Initializing flag store")
        await self.connector.init()
        try:
            payload = await asyncio.wait_for(
                self.connector.stream.get(), _INITIAL_SYNC_TIMEOUT
            )
        except asyncio.TimeoutError as exc:
            raise StoreError("Timed out waiting for initial sync message") from exc

        if payload.payload_type is QueuePayloadType.ERROR:
            log.error("Error in initial sync")
            raise StoreError("Error in initial sync")
        self._apply(parse_string(payload.flag_data))
        log.debug("Successfully parsed %d flags", len(self._flags))
        self._listener = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        while True:
            payload = await self.connector.stream.get()
            if payload.payload_type is QueuePayloadType.DATA:
                try:
                    result = parse_string(payload.flag_data)
                except ValueError as exc:
                    log.debug("Ignoring unparsable flag update: %s", exc)
                    continue
                self._apply(result)
                change = StorageStateChange(
                    StorageState.OK, sync_metadata=dict(payload.metadata or {})
                )
            else:
                change = StorageStateChange(StorageState.ERROR)
            await self.state_changes.put(change)

    async def shutdown(self) -> None:
        """Stop listening for updates and shut the connector down."""
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
        await self.connector.shutdown()

    async def get_flag(self, key: str) -> StorageQueryResult:
        """Look up a flag by key; the result is a copy of the stored data."""
        return StorageQueryResult(
            feature_flag=copy.deepcopy(self._flags.get(key)),
            flag_set_metadata=copy.deepcopy(self._flag_set_metadata),
        )