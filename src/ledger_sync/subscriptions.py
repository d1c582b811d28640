"""Live subscriptions for one identity's ledger partition.

For the active identity the manager keeps exactly one subscription per
collection (employees, workDays, payments) plus one on the settings
document. Every snapshot is normalized into records, published on a
per-collection :class:`SnapshotChannel`, and folded into the store as a
``SET_<COLLECTION>`` action.

Subscriptions opened for an identity are tagged with a generation number.
Closing bumps the generation and releases every listener, so a callback
that was already queued for a previous identity is dropped instead of
leaking into the next identity's projection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from ledger_sync.channels import SnapshotChannel
from ledger_sync.config import SyncConfig
from ledger_sync.identity import Identity
from ledger_sync.records import Record, parse_employee, parse_payment, parse_work_day
from ledger_sync.reducer import (
    Action,
    reset_state,
    set_employees,
    set_error,
    set_initialized,
    set_loading,
    set_payments,
    set_work_days,
    update_settings,
)
from ledger_sync.remote.base import (
    EMPLOYEES,
    PAYMENTS,
    SETTINGS,
    WORK_DAYS,
    Document,
    LedgerPaths,
    RemoteLedgerStore,
    Unsubscribe,
)
from ledger_sync.store import LedgerStore

logger = logging.getLogger(__name__)


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition from '{from_status}' to '{to_status}'")


class SubscriptionStateMachine:
    """Allowed transitions:

    - unsubscribed -> subscribing
    - subscribing -> active | error | unsubscribed
    - active -> error | unsubscribed
    - error -> unsubscribed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SubscriptionStatus.UNSUBSCRIBED: [SubscriptionStatus.SUBSCRIBING],
        SubscriptionStatus.SUBSCRIBING: [
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.ERROR,
            SubscriptionStatus.UNSUBSCRIBED,
        ],
        SubscriptionStatus.ACTIVE: [SubscriptionStatus.ERROR, SubscriptionStatus.UNSUBSCRIBED],
        SubscriptionStatus.ERROR: [SubscriptionStatus.UNSUBSCRIBED],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        return cls.VALID_TRANSITIONS.get(current_status, [])


@dataclass(frozen=True)
class _CollectionFeed:
    name: str
    parse: Callable[[Document], Record]
    action: Callable[[Any], Action]


COLLECTIONS: tuple[_CollectionFeed, ...] = (
    _CollectionFeed(EMPLOYEES, parse_employee, set_employees),
    _CollectionFeed(WORK_DAYS, parse_work_day, set_work_days),
    _CollectionFeed(PAYMENTS, parse_payment, set_payments),
)


class SubscriptionManager:
    """Opens and releases the live subscriptions of one identity."""

    def __init__(
        self,
        remote: RemoteLedgerStore,
        store: LedgerStore,
        config: SyncConfig | None = None,
    ) -> None:
        self._remote = remote
        self._store = store
        self._config = config or SyncConfig()
        self._status = SubscriptionStatus.UNSUBSCRIBED
        self._identity: Identity | None = None
        self._generation = 0
        self._unsubscribers: list[Unsubscribe] = []
        self._channels: dict[str, SnapshotChannel[list[Record]]] = {}
        self._fold_tasks: list[asyncio.Task[None]] = []
        self._retired_tasks: list[asyncio.Task[None]] = []
        self._init_handle: asyncio.TimerHandle | None = None
        self._awaiting_first: set[str] = set()

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def generation(self) -> int:
        """Bumped on every open and close."""
        return self._generation

    def channel(self, collection: str) -> SnapshotChannel[list[Record]]:
        """Snapshot stream of a collection for the current identity."""
        try:
            return self._channels[collection]
        except KeyError:
            raise LookupError(f"no open subscription for '{collection}'") from None

    def _transition(self, to_status: SubscriptionStatus) -> None:
        if to_status == self._status:
            return
        SubscriptionStateMachine.validate_transition(self._status, to_status)
        logger.debug("subscriptions %s -> %s", self._status.value, to_status.value)
        self._status = to_status

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, identity: Identity) -> None:
        """Subscribe to ``identity``'s partition, releasing any previous one.

        Reopening the same identity after a subscription error resubscribes.
        Must be called from a running event loop.
        """
        if (
            self._identity is not None
            and self._identity.uid == identity.uid
            and self._status in (SubscriptionStatus.SUBSCRIBING, SubscriptionStatus.ACTIVE)
        ):
            return
        if self._status != SubscriptionStatus.UNSUBSCRIBED or self._identity is not None:
            self.close()

        loop = asyncio.get_running_loop()
        self._transition(SubscriptionStatus.SUBSCRIBING)
        self._identity = identity
        self._generation += 1
        generation = self._generation
        paths = LedgerPaths(identity.uid)
        logger.info("opening ledger subscriptions for %s", identity.uid)

        self._store.dispatch(set_loading(True))
        self._awaiting_first = {feed.name for feed in COLLECTIONS} | {SETTINGS}

        for feed in COLLECTIONS:
            channel: SnapshotChannel[list[Record]] = SnapshotChannel(feed.name)
            self._channels[feed.name] = channel
            self._fold_tasks.append(loop.create_task(self._fold(channel, feed)))
            self._attach(
                feed.name,
                lambda feed=feed, channel=channel: self._remote.subscribe(
                    paths.collection(feed.name),
                    self._collection_handler(generation, feed, channel),
                    self._error_handler(generation, feed.name),
                ),
            )

        self._attach(
            SETTINGS,
            lambda: self._remote.subscribe_document(
                paths.settings_document,
                self._settings_handler(generation),
                self._error_handler(generation, SETTINGS),
            ),
        )

        self._init_handle = loop.call_later(
            self._config.init_grace_seconds, self._mark_initialized, generation
        )

    def close(self) -> None:
        """Release every subscription and reset the projection."""
        self._generation += 1

        for unsubscribe in self._unsubscribers:
            try:
                unsubscribe()
            except Exception:
                logger.exception("Failed to release subscription")
        self._unsubscribers = []

        for channel in self._channels.values():
            channel.close()
        self._channels = {}
        for task in self._fold_tasks:
            task.cancel()
        self._retired_tasks.extend(self._fold_tasks)
        self._fold_tasks = []

        if self._init_handle is not None:
            self._init_handle.cancel()
            self._init_handle = None

        if self._identity is not None:
            logger.info("closed ledger subscriptions for %s", self._identity.uid)
        self._identity = None
        self._awaiting_first = set()
        self._transition(SubscriptionStatus.UNSUBSCRIBED)
        self._store.dispatch(reset_state())

    async def wait_released(self) -> None:
        """Wait until the fold tasks of released subscriptions have stopped."""
        retired, self._retired_tasks = self._retired_tasks, []
        if retired:
            await asyncio.gather(*retired, return_exceptions=True)

    def _attach(self, name: str, subscribe: Callable[[], Unsubscribe]) -> None:
        try:
            self._unsubscribers.append(subscribe())
        except Exception as exc:
            self._error_handler(self._generation, name)(exc)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _collection_handler(
        self,
        generation: int,
        feed: _CollectionFeed,
        channel: SnapshotChannel[list[Record]],
    ) -> Callable[[list[Document]], None]:
        def on_snapshot(documents: list[Document]) -> None:
            if generation != self._generation:
                return
            records: list[Record] = []
            for document in documents:
                try:
                    records.append(feed.parse(document))
                except ValidationError as exc:
                    logger.warning(
                        "skipping malformed %s document %s: %s",
                        feed.name,
                        document.get("id"),
                        exc.errors(include_url=False),
                    )
            channel.publish(records)
            self._first_snapshot(feed.name)

        return on_snapshot

    def _settings_handler(self, generation: int) -> Callable[[Document | None], None]:
        def on_snapshot(document: Document | None) -> None:
            if generation != self._generation:
                return
            if document is not None:
                self._store.dispatch(update_settings(self._settings_fields(document)))
            self._first_snapshot(SETTINGS)

        return on_snapshot

    def _settings_fields(self, document: Document) -> dict[str, Any]:
        """Settings keys of ``document`` that merge cleanly; null values are ignored."""
        fields = {k: v for k, v in document.items() if k != "id" and v is not None}
        try:
            self._store.state.settings.merged(fields)
        except ValidationError as exc:
            invalid = {err["loc"][0] for err in exc.errors() if err["loc"]}
            logger.warning(
                "ignoring invalid settings fields %s: %s",
                sorted(map(str, invalid)),
                exc.errors(include_url=False),
            )
            fields = {k: v for k, v in fields.items() if k not in invalid}
        return fields

    def _error_handler(self, generation: int, name: str) -> Callable[[Exception], None]:
        def on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            logger.warning("%s subscription error: %s", name, exc)
            self._awaiting_first.discard(name)
            self._transition(SubscriptionStatus.ERROR)
            # Prior data stays in place; only the error flag is raised
            self._store.dispatch(set_error(f"Connection error: unable to sync {name}"))

        return on_error

    async def _fold(
        self, channel: SnapshotChannel[list[Record]], feed: _CollectionFeed
    ) -> None:
        async for snapshot in channel:
            self._store.dispatch(feed.action(snapshot))

    def _first_snapshot(self, name: str) -> None:
        if name not in self._awaiting_first:
            return
        self._awaiting_first.discard(name)
        if not self._awaiting_first and self._status == SubscriptionStatus.SUBSCRIBING:
            self._transition(SubscriptionStatus.ACTIVE)

    def _mark_initialized(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._init_handle = None
        self._store.dispatch(set_initialized(True))
        self._store.dispatch(set_loading(False))
        logger.info("ledger initialized for %s", self._identity.uid if self._identity else "-")
