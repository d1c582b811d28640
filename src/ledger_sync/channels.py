"""Snapshot streams for live collections.

A :class:`SnapshotChannel` carries full-collection snapshots, never diffs,
so only the newest snapshot matters: publishing conflates, and a slow
consumer skips straight to the latest list. Every ``async for`` over a
channel is a fresh iterator that starts from the latest snapshot, which
makes the stream restartable.

Usage:
    channel = SnapshotChannel("employees")
    unsubscribe = remote.subscribe(path, channel.publish, on_error)

    async for snapshot in channel:
        store.dispatch(set_employees(snapshot))
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Generic, TypeVar

T = TypeVar("T")


class SnapshotChannel(Generic[T]):
    """Conflating, restartable stream of full snapshots."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._latest: T | None = None
        self._version = 0
        self._closed = False
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def latest(self) -> T | None:
        """Most recent snapshot, or None if nothing was published yet."""
        return self._latest

    def publish(self, snapshot: T) -> bool:
        """Offer a snapshot; returns False if the channel is closed."""
        if self._closed:
            return False
        self._latest = snapshot
        self._version += 1
        self._wake()
        return True

    def close(self) -> None:
        """End every iterator; later publishes are dropped."""
        self._closed = True
        self._wake()

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        seen = 0
        while True:
            if self._closed:
                return
            if self._version > seen:
                seen = self._version
                yield self._latest  # type: ignore[misc]
                continue

            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
