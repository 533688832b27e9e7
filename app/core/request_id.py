# app/core/request_id.py
"""
Correlation ids for log events.

The API binds one request id per HTTP request (RequestIdMiddleware). The feed
scheduler opens one run id per ingest cycle, and every feed task spawned in that
cycle inherits it, so all fetch, parse and save events of a cycle share it.
Both are picked up by the logging processors in app.core.logging.
"""
from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)

# -------- Request ID (API) ---------------------------------------------------

def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)

def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()

def clear_request_id() -> None:
    _request_id_ctx.set(None)

# -------- Run ID (ingest cycles) ---------------------------------------------

def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()

@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """
    Scope one ingest cycle:
        with with_run_id():
            ... fan out feed tasks ...
    Tasks created inside the block copy the context, so their log events
    carry the same run_id.
    """
    rid = run_id or uuid.uuid4().hex
    token = _run_id_ctx.set(rid)
    try:
        yield rid
    finally:
        _run_id_ctx.reset(token)
