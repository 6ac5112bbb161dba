"""Forward-only cursor pagination over ordered queries.

A page is requested with a size ``N``; more data is assumed to exist whenever
a full page of ``N`` rows comes back. That is an approximation: when the last
page happens to be exactly full, one extra fetch returns an empty page.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Sequence, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import Select, and_, or_
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.base import as_utc

T = TypeVar("T")


class InvalidCursorError(ValueError):
    """Raised when a client supplies a cursor token that cannot be decoded."""


@dataclass(frozen=True, slots=True)
class Cursor:
    """Position just after the last row seen: its sort key plus its id as a tiebreaker."""

    sort_value: Any
    row_id: str

    def encode(self) -> str:
        if isinstance(self.sort_value, datetime):
            value, kind = as_utc(self.sort_value).isoformat(), "dt"
        else:
            value, kind = self.sort_value, "raw"
        raw = json.dumps({"v": value, "k": kind, "id": self.row_id}, separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "Cursor":
        padded = token + "=" * (-len(token) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            value = data["v"]
            if data.get("k") == "dt":
                value = datetime.fromisoformat(value)
            return cls(sort_value=value, row_id=str(data["id"]))
        except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError) as exc:
            raise InvalidCursorError("Invalid pagination cursor") from exc


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    next_cursor: Cursor | None
    has_more: bool


FetchPage = Callable[[Cursor | None, int], Sequence[T]]


class CursorPaginator(Generic[T]):
    """Stateful paginator that walks a fetch function forward page by page."""

    def __init__(
        self,
        fetch: FetchPage[T],
        cursor_for: Callable[[T], Cursor],
        *,
        initial_page_size: int | None = None,
        page_size: int | None = None,
    ) -> None:
        settings = get_settings()
        self._fetch = fetch
        self._cursor_for = cursor_for
        self.initial_page_size = initial_page_size or settings.initial_page_size
        self.page_size = page_size or settings.page_size
        if self.initial_page_size < 1 or self.page_size < 1:
            raise ValueError("page sizes must be positive")
        self.items: list[T] = []
        self.cursor: Cursor | None = None
        self.has_more = True
        self.loaded = False

    def _load(self, size: int) -> list[T]:
        page = list(self._fetch(self.cursor, size))
        if page:
            self.cursor = self._cursor_for(page[-1])
        self.has_more = len(page) == size
        self.items.extend(page)
        self.loaded = True
        return page

    def load_initial(self) -> list[T]:
        self.reset()
        return self._load(self.initial_page_size)

    def load_more(self) -> list[T]:
        if not self.loaded:
            return self.load_initial()
        if not self.has_more:
            return []
        return self._load(self.page_size)

    def reset(self) -> None:
        self.items = []
        self.cursor = None
        self.has_more = True
        self.loaded = False

    def refresh(self) -> list[T]:
        return self.load_initial()

    def update_query(self, fetch: FetchPage[T]) -> None:
        self._fetch = fetch
        self.reset()


def _coerce_id(id_column, raw: str) -> Any:
    python_type = id_column.type.python_type
    if python_type is str:
        return raw
    return python_type(raw)


def keyset_page(
    db: Session,
    stmt: Select,
    *,
    sort_column,
    id_column,
    cursor: Cursor | None,
    limit: int,
    descending: bool = True,
) -> list[Any]:
    """Run ``stmt`` ordered by ``(sort_column, id_column)`` starting after ``cursor``."""

    if cursor is not None:
        last_id = _coerce_id(id_column, cursor.row_id)
        if descending:
            stmt = stmt.where(
                or_(
                    sort_column < cursor.sort_value,
                    and_(sort_column == cursor.sort_value, id_column < last_id),
                )
            )
        else:
            stmt = stmt.where(
                or_(
                    sort_column > cursor.sort_value,
                    and_(sort_column == cursor.sort_value, id_column > last_id),
                )
            )
    if descending:
        stmt = stmt.order_by(sort_column.desc(), id_column.desc())
    else:
        stmt = stmt.order_by(sort_column.asc(), id_column.asc())
    return list(db.scalars(stmt.limit(limit)))


def keyset_fetcher(
    db: Session,
    stmt: Select,
    *,
    sort_column,
    id_column,
    descending: bool = True,
) -> FetchPage[Any]:
    """Bind a statement to the session so a ``CursorPaginator`` can walk it."""

    def fetch(cursor: Cursor | None, limit: int) -> list[Any]:
        return keyset_page(
            db,
            stmt,
            sort_column=sort_column,
            id_column=id_column,
            cursor=cursor,
            limit=limit,
            descending=descending,
        )

    return fetch


def fetch_page(
    db: Session,
    stmt: Select,
    *,
    sort_column,
    id_column,
    sort_attr: str,
    cursor_token: str | None,
    limit: int,
    descending: bool = True,
) -> Page[Any]:
    """Single-request form used by the HTTP layer: decode, query, re-encode."""

    try:
        cursor = Cursor.decode(cursor_token) if cursor_token else None
    except InvalidCursorError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    rows = keyset_page(
        db,
        stmt,
        sort_column=sort_column,
        id_column=id_column,
        cursor=cursor,
        limit=limit,
        descending=descending,
    )
    next_cursor = Cursor(sort_value=getattr(rows[-1], sort_attr), row_id=str(rows[-1].id)) if rows else None
    return Page(items=rows, next_cursor=next_cursor, has_more=len(rows) == limit)


__all__ = [
    "Cursor",
    "CursorPaginator",
    "FetchPage",
    "InvalidCursorError",
    "Page",
    "fetch_page",
    "keyset_fetcher",
    "keyset_page",
]
