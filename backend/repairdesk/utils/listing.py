from __future__ import annotations
from typing import Iterable, Optional, Tuple
from flask import request, abort, make_response
from sqlalchemy.orm import Query
from repairdesk.config.pagination import normalize_pagination
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def _canonical(dt: datetime) -> datetime:
    # UTC, whole seconds: HTTP dates carry no sub-second precision
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None) -> str:
    stamp = _canonical(latest_ts).isoformat() if isinstance(latest_ts, datetime) else ''
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{stamp}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, latest_ts)
    resp = make_response({
        'data': rows,
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    })
    _stamp(resp, etag, latest_ts)
    return resp, etag


def make_cached_response(payload: dict, etag: str):
    """Single-document variant: the caller supplies the ETag (e.g. a content digest)."""
    resp = make_response(payload)
    _stamp(resp, etag, None)
    return resp


def _stamp(resp, etag_value: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag_value
    if isinstance(latest_ts, datetime):
        resp.headers['Last-Modified'] = format_datetime(_canonical(latest_ts), usegmt=True)


def handle_conditional(etag_value: str, latest_ts: Optional[datetime] = None):
    """Return a 304 response when the client's copy is current, else None.

    If-None-Match takes precedence; If-Modified-Since is only consulted for
    listings that carry a timestamp.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') != etag_value:
            return None
    else:
        ims_raw = request.headers.get('If-Modified-Since')
        if not ims_raw or not isinstance(latest_ts, datetime):
            return None
        try:
            ims_dt = parsedate_to_datetime(ims_raw)
        except (TypeError, ValueError):
            return None
        if _canonical(latest_ts) > _canonical(ims_dt) + TIMESTAMP_TOLERANCE:
            return None
    resp = make_response('', 304)
    _stamp(resp, etag_value, latest_ts)
    return resp


__all__ = ['apply_pagination', 'compute_etag', 'make_cached_list_response', 'make_cached_response', 'handle_conditional']
