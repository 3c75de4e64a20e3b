from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Protocol

import redis
from pydantic import ValidationError

from servicelog.core.config import settings
from servicelog.schemas.forms import ServiceLogFormState
from servicelog.services.errors import SnapshotCorrupt
from servicelog.services.field_resolver import FieldResolver
from servicelog.services.field_types import FieldDefinition
from servicelog.services.form_binder import reconcile_entry

_LOG = logging.getLogger("servicelog.drafts")

RECOVERY_FAILED_NOTICE = "Draft recovery failed; starting with an empty form."


class DraftStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryDraftStore:
    def __init__(self):
        self._data: dict[str, tuple[str, datetime]] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        now = datetime.now(timezone.utc)
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(int(ttl_seconds), 1))
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class RedisDraftStore:
    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> str | None:
        value = self.client.get(key)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=int(max(ttl_seconds, 1)))

    def delete(self, key: str) -> None:
        self.client.delete(key)


_cached_store: DraftStore | None = None


def _build_store() -> DraftStore:
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisDraftStore(client)
    except Exception:
        _LOG.warning("Redis draft store unavailable; fallback to in-memory store")
        return InMemoryDraftStore()


def get_draft_store() -> DraftStore:
    global _cached_store
    if _cached_store is None:
        _cached_store = _build_store()
    return _cached_store


def reset_draft_store_for_tests(store: DraftStore | None = None) -> None:
    global _cached_store
    _cached_store = store


def draft_key(user_id: Any) -> str:
    return f"{settings.DRAFT_KEY_PREFIX}:{str(user_id).strip()}"


def parse_snapshot(payload: str) -> ServiceLogFormState:
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise SnapshotCorrupt("Draft payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise SnapshotCorrupt("Draft payload is not an object")
    try:
        return ServiceLogFormState.model_validate(data)
    except ValidationError as exc:
        raise SnapshotCorrupt("Draft payload does not match the form shape") from exc


@dataclass
class RestoreResult:
    form: ServiceLogFormState | None = None
    fields: list[FieldDefinition] = field(default_factory=list)
    dropped_field_ids: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)


class DraftReconciler:
    """Saves and restores one user's service-log draft.

    Nothing here raises to the caller: store failures are logged, corrupt
    snapshots are removed, and fields that no longer resolve are dropped.
    When the field set cannot be resolved at all, values are kept as saved.
    """

    def __init__(self, store: DraftStore, key: str, resolver: FieldResolver | None = None):
        self.store = store
        self.key = key
        self.resolver = resolver

    def save_snapshot(self, form: ServiceLogFormState) -> bool:
        try:
            payload = json.dumps(form.snapshot(), ensure_ascii=False)
            self.store.set(self.key, payload, ttl_seconds=settings.DRAFT_TTL_SECONDS)
        except Exception:
            _LOG.warning("draft snapshot write failed key=%s", self.key, exc_info=True)
            return False
        return True

    def _read(self) -> str | None:
        try:
            return self.store.get(self.key)
        except Exception:
            _LOG.warning("draft snapshot read failed key=%s", self.key, exc_info=True)
            return None

    def discard(self) -> None:
        try:
            self.store.delete(self.key)
        except Exception:
            _LOG.warning("draft snapshot delete failed key=%s", self.key, exc_info=True)

    def restore(self) -> RestoreResult:
        payload = self._read()
        if payload is None:
            return RestoreResult()
        try:
            form = parse_snapshot(payload)
        except SnapshotCorrupt as exc:
            _LOG.warning("discarding corrupt draft key=%s: %s", self.key, exc.message)
            self.discard()
            return RestoreResult(notices=[RECOVERY_FAILED_NOTICE])

        result = RestoreResult(form=form)
        if self.resolver is None:
            return result
        resolution = self.resolver.resolve_or_degrade(form.client_id)
        result.fields = resolution.fields
        if resolution.degraded:
            # Unknown field set: the draft's values are returned untouched.
            result.notices.append(resolution.notice)
            return result

        dropped: set[str] = set()
        for entry in form.entries:
            values, discarded = reconcile_entry(entry.custom_fields, resolution.fields)
            entry.custom_fields = values
            dropped.update(discarded)
        result.dropped_field_ids = sorted(dropped)
        if dropped:
            _LOG.warning(
                "draft restore dropped %d fields no longer resolved for client=%s: %s",
                len(dropped),
                form.client_id,
                ", ".join(result.dropped_field_ids),
            )
        return result

    def restore_snapshot(self) -> ServiceLogFormState | None:
        return self.restore().form


class DraftSource(Protocol):
    form: ServiceLogFormState
    dirty: bool

    def mark_clean(self) -> None:
        ...


class AutosaveLoop:
    """Periodically snapshots a dirty form; at most one write is in flight at a time."""

    def __init__(self, reconciler: DraftReconciler, source: DraftSource, interval_seconds: float | None = None):
        self.reconciler = reconciler
        self.source = source
        self.interval_seconds = float(
            interval_seconds if interval_seconds is not None else settings.DRAFT_AUTOSAVE_INTERVAL_SECONDS
        )
        self._task: asyncio.Task | None = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.save_if_dirty()

    async def save_if_dirty(self) -> bool:
        if self._in_flight or not self.source.dirty:
            return False
        return await self._write()

    async def save_now(self) -> bool:
        if self._in_flight:
            return False
        return await self._write()

    async def _write(self) -> bool:
        self._in_flight = True
        snapshot = self.source.form.model_copy(deep=True)
        # Edits made while the write is running set dirty again.
        self.source.mark_clean()
        try:
            saved = await asyncio.to_thread(self.reconciler.save_snapshot, snapshot)
        finally:
            self._in_flight = False
        if not saved:
            self.source.dirty = True
        return saved

    async def stop(self) -> bool:
        """Cancel the timer and flush once more; returns whether the final flush saved."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self.source.dirty and not self._in_flight:
            return await self._write()
        return False
