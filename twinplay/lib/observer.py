# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playback state observer — one per backend.

Players fire several change notifications per logical change.  Each
notification (re)arms a short debounce timer; when it expires the observer
reads the backend's snapshot once, re-resolves the current item, and
compares the status with the last status it *reported*.  Only a different
status produces a "state" event, so listeners never see the same status
twice in a row.  Rate and position ride along but never trigger an event.

A change of current item (by id) produces an "item" event once the new
item resolves.  Item resolution failing only leaves currentItem out.

At most one evaluation runs at a time.  A timer that expires mid-evaluation
re-arms instead of starting a second one.
"""

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .errors import TwinPlayError
from .records import BackendId, CanonicalItem, ItemRef, PlaybackSnapshot, PlaybackStatus, RawSnapshot

log = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.05

STATE = "state"
ITEM = "item"
EVENT_TYPES = (STATE, ITEM)

SnapshotReader = Callable[[], Awaitable[RawSnapshot]]
ItemResolver = Callable[[ItemRef], Awaitable[CanonicalItem | None]]


@dataclass(frozen=True)
class PlaybackEvent:
    type: str
    snapshot: PlaybackSnapshot

    @property
    def backend(self) -> BackendId:
        return self.snapshot.backend


class PlaybackObserver:

    def __init__(self, backend: BackendId, read_snapshot: SnapshotReader,
                 resolve_item: ItemResolver, debounce: float = DEBOUNCE_SECONDS):
        self.backend = backend
        self.debounce = debounce
        self._read_snapshot = read_snapshot
        self._resolve_item = resolve_item
        self._last_status = PlaybackStatus.IDLE
        self._last_item_id: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._rearm = False
        self._listeners: dict[int, tuple[Callable, frozenset]] = {}
        self._tokens = itertools.count(1)
        self.evaluations = 0

    @property
    def last_reported_status(self) -> PlaybackStatus:
        return self._last_status

    @property
    def pending(self) -> bool:
        """True while a debounce timer is armed or an evaluation is running."""
        return self._timer is not None or (self._task is not None and not self._task.done())

    # ── Subscriptions ──

    def subscribe(self, listener: Callable, events=(STATE,)) -> int:
        wanted = frozenset(events)
        unknown = wanted - set(EVENT_TYPES)
        if unknown:
            raise ValueError(f"Unknown event type(s): {', '.join(sorted(unknown))}")
        token = next(self._tokens)
        self._listeners[token] = (listener, wanted)
        return token

    def unsubscribe(self, token: int) -> bool:
        return self._listeners.pop(token, None) is not None

    # ── Notifications / debounce ──

    def notify(self) -> None:
        """Backend change notification.  Coalesced into one evaluation per burst."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce, self._fire)

    def _fire(self):
        self._timer = None
        if self._task is not None and not self._task.done():
            self._rearm = True
            return
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        try:
            await self.evaluate()
        except TwinPlayError as e:
            log.warning("%s snapshot unavailable: %s", self.backend.value, e)
        except Exception:
            log.exception("%s observer evaluation failed", self.backend.value)
        finally:
            if self._rearm:
                self._rearm = False
                self.notify()

    # ── Evaluation ──

    async def resolve(self, ref: ItemRef | None) -> CanonicalItem | None:
        if ref is None:
            return None
        try:
            return await self._resolve_item(ref)
        except TwinPlayError as e:
            log.warning("Could not resolve %s item %s: %s", self.backend.value, ref.id, e)
            return None

    async def current(self) -> PlaybackSnapshot:
        """One-shot snapshot with the current item resolved.  Emits nothing."""
        raw = await self._read_snapshot()
        item = await self.resolve(raw.current_ref)
        return self._snapshot(raw, item)

    def _snapshot(self, raw: RawSnapshot, item: CanonicalItem | None) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            backend=self.backend,
            status=PlaybackStatus.from_backend(raw.status),
            rate=raw.rate,
            position=raw.position,
            current_item=item,
        )

    async def evaluate(self) -> None:
        self.evaluations += 1
        raw = await self._read_snapshot()
        status = PlaybackStatus.from_backend(raw.status)
        ref = raw.current_ref

        status_changed = status is not self._last_status
        item_changed = ref is not None and ref.id != self._last_item_id
        if ref is None:
            self._last_item_id = None

        if not status_changed and not item_changed:
            log.debug("%s: %s unchanged — suppressed", self.backend.value, status.value)
            return

        item = await self.resolve(ref)
        snapshot = self._snapshot(raw, item)

        if status_changed:
            log.info("%s playback %s -> %s", self.backend.value,
                     self._last_status.value, status.value)
            self._last_status = status
            await self._emit(PlaybackEvent(STATE, snapshot))

        if item_changed and item is not None:
            self._last_item_id = ref.id
            log.info("%s current item -> %s (%s)", self.backend.value, item.title, item.id)
            await self._emit(PlaybackEvent(ITEM, snapshot))

    async def _emit(self, event: PlaybackEvent):
        for token, (listener, wanted) in list(self._listeners.items()):
            if event.type not in wanted:
                continue
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("Listener %d failed on %s event", token, event.type)

    async def close(self):
        self._rearm = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
