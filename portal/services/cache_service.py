"""
Company Portal
Read-model cache.

Request listings are the hottest read in the portal (every dashboard
refresh sorts the whole collection by submission date), so they are
served cache-aside. Redis is used when ``REDIS_URL`` names a Redis server;
otherwise a process-local store stands in.

Invalidation is commit-driven rather than call-site driven: a
``before_flush`` hook marks any session that writes a request, history,
action or viewer row, and the matching ``after_commit`` drops every cached
listing. A rolled-back session leaves the cache alone.
"""

import json
import logging
import threading
import time

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

REQUEST_LIST_TTL = 60
DEFAULT_TTL = 300

REQUEST_LIST_PREFIX = "wfreq:list:"

_DIRTY_FLAG = "wf_read_model_dirty"

_WATCHED_TABLES = frozenset({
    "workflow_requests",
    "workflow_history",
    "workflow_action_requests",
    "workflow_request_viewers",
})


# ── Backends ────────────────────────────────────────────────────────────────


class _MemoryBackend:
    """Process-local stand-in exposing the subset of the redis API used here."""

    def __init__(self):
        self._items = {}  # key -> (payload, expires_at)
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            payload, expires_at = item
            if time.monotonic() >= expires_at:
                del self._items[key]
                return None
            return payload

    def setex(self, key, ttl_seconds, payload):
        with self._lock:
            self._items[key] = (payload, time.monotonic() + ttl_seconds)

    def delete(self, *keys):
        with self._lock:
            for key in keys:
                self._items.pop(key, None)

    def scan_iter(self, match):
        prefix = match[:-1] if match.endswith("*") else None
        with self._lock:
            keys = list(self._items)
        if prefix is None:
            return [k for k in keys if k == match]
        return [k for k in keys if k.startswith(prefix)]

    def flushdb(self):
        with self._lock:
            self._items.clear()

    def ping(self):
        return True


_backend = _MemoryBackend()


def _connect(redis_url):
    if not redis_url or redis_url.startswith("memory://"):
        return _MemoryBackend()
    try:
        import redis as _redis
        client = _redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except Exception as exc:
        logger.warning("Redis at %s unreachable (%s); caching request lists in memory",
                       redis_url.split("@")[-1], exc)
        return _MemoryBackend()
    logger.info("Read-model cache on Redis at %s", redis_url.split("@")[-1])
    return client


# ── Keys ────────────────────────────────────────────────────────────────────


def request_list_key(**filters):
    parts = [f"{k}={filters[k]}" for k in sorted(filters) if filters[k] is not None]
    return REQUEST_LIST_PREFIX + ("&".join(parts) or "all")


# ── Cache-aside ─────────────────────────────────────────────────────────────


def get_cached(key, ttl=DEFAULT_TTL, loader=None):
    """Return the cached JSON value for *key*; on a miss call *loader* and store its result."""
    payload = _backend.get(key)
    if payload is not None:
        try:
            return json.loads(payload)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache entry %s", key)
            _backend.delete(key)
    if loader is None:
        return None
    value = loader()
    if value is not None:
        _backend.setex(key, ttl, json.dumps(value, default=str))
    return value


def delete_cached(key):
    _backend.delete(key)


def invalidate_request_lists():
    """Drop every cached request list, whatever its filters."""
    stale = list(_backend.scan_iter(match=f"{REQUEST_LIST_PREFIX}*"))
    if stale:
        _backend.delete(*stale)
        logger.debug("Invalidated %d cached request list(s)", len(stale))


def clear_all():
    _backend.flushdb()


def health_check():
    try:
        _backend.ping()
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "backend": "memory" if isinstance(_backend, _MemoryBackend) else "redis"}


# ── Commit hooks ────────────────────────────────────────────────────────────


def _mark_if_watched(session, flush_context, instances):
    for obj in (*session.new, *session.dirty, *session.deleted):
        if getattr(obj, "__tablename__", None) in _WATCHED_TABLES:
            session.info[_DIRTY_FLAG] = True
            return


def _invalidate_if_marked(session):
    if session.info.pop(_DIRTY_FLAG, False):
        invalidate_request_lists()


def _forget_mark(session):
    session.info.pop(_DIRTY_FLAG, None)


def init_read_model_cache(app):
    """Select the backend from ``REDIS_URL`` and install the commit hooks.

    The hooks attach to SQLAlchemy's ``Session`` class (Flask-SQLAlchemy's
    session subclasses it) and are installed once per process.
    """
    global _backend
    _backend = _connect(app.config.get("REDIS_URL"))

    if not event.contains(Session, "before_flush", _mark_if_watched):
        event.listen(Session, "before_flush", _mark_if_watched)
        event.listen(Session, "after_commit", _invalidate_if_marked)
        event.listen(Session, "after_rollback", _forget_mark)
