"""
content/store.py -- SQLAlchemy-backed persistence layer for CMS content.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in content/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. ContentStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Every content kind gets its own table built from the same set of shared
columns plus the kind's own columns (KIND_ATTRIBUTES). Code that works on
"an item" looks the table up by kind and never branches on it.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ContentStore()
    item = store.create_item(ContentItem(kind="news", title="Hello", status="published"))
    items, total = store.list_items("news", status="published")
    store.set_comment_status(comment_id, "approved")
    store.close()
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from content.models import COMMENT_STATUSES, CONTENT_STATUSES, KINDS, Comment, ContentItem, Setting
from content.slugs import slugify
from core.config import get_settings
from core.db import iso_utc, make_engine


class ContentError(Exception):
    """A content operation that cannot proceed, with an HTTP status attached."""

    def __init__(self, code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

# Columns only one kind has. Values are exposed on ContentItem.attributes.
KIND_ATTRIBUTES: dict[str, tuple[Column, ...]] = {
    "news": (Column("category", String(100)),),
    "products": (
        Column("price", Float),
        Column("sku", String(100)),
        Column("stock", Integer),
    ),
    "projects": (
        Column("client", String(255)),
        Column("location", String(255)),
        Column("completed_on", String(10)),  # YYYY-MM-DD
    ),
    "services": (
        Column("icon", String(255)),
        Column("sort_order", Integer, server_default="0"),
    ),
    "events": (
        Column("location", String(255)),
        Column("starts_at", String(32)),
        Column("ends_at", String(32)),
    ),
}


def _content_table(kind: str) -> Table:
    return Table(
        kind,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("title", String(255), nullable=False),
        Column("slug", String(255), nullable=False, unique=True),
        Column("summary", Text),
        Column("body", Text),
        Column("image_url", String(500)),
        Column("status", String(20), nullable=False, server_default="draft"),
        Column("author_id", Integer),
        Column("published_at", String(32)),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
        *KIND_ATTRIBUTES[kind],
        Index(f"ix_{kind}_status", "status", "published_at"),
    )


_tables: dict[str, Table] = {kind: _content_table(kind) for kind in KINDS}

_comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("target_type", String(20), nullable=False),
    Column("target_id", Integer, nullable=False),
    Column("author_name", String(255), nullable=False),
    Column("author_email", String(255)),
    Column("body", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("user_id", Integer),
    Column("ip_address", String(45)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_comments_target", "target_type", "target_id", "status"),
)

_settings_table = Table(
    "settings",
    metadata,
    Column("key", String(100), primary_key=True),
    Column("value", Text),
    Column("description", String(500)),
    Column("is_public", Integer, nullable=False, server_default="0"),
    Column("updated_at", String(32), nullable=False),
)

# Fields update_item() may set besides kind-specific attributes.
_ITEM_MUTABLE_FIELDS = {"title", "slug", "summary", "body", "image_url", "status", "author_id"}


def _slug_conflict(slug: str) -> ContentError:
    return ContentError("slug_taken", f"Slug '{slug}' is already in use.", 409)


def attribute_names(kind: str) -> tuple[str, ...]:
    return tuple(col.name for col in KIND_ATTRIBUTES[kind])


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ContentStore:
    """Repository for content items, comments and settings."""

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    def create_item(self, item: ContentItem) -> ContentItem:
        """Insert a content item and return it as stored.

        An explicit slug must be free (409 otherwise). Without one, a slug is
        derived from the title and suffixed -2, -3, ... until unique.
        published_at is stamped when the item is created as published.
        """
        table = _table_for(item.kind)
        _check_status(item.status, CONTENT_STATUSES)
        now = iso_utc()
        values = {
            "title": item.title,
            "summary": item.summary,
            "body": item.body,
            "image_url": item.image_url,
            "status": item.status,
            "author_id": item.author_id,
            "published_at": item.published_at or (now if item.status == "published" else None),
            "created_at": now,
            "updated_at": now,
        }
        values.update(_attribute_values(item.kind, item.attributes))
        with self.engine.connect() as conn:
            values["slug"] = self._resolve_slug(conn, table, item.slug, item.title)
            try:
                result = conn.execute(table.insert().values(**values))
            except IntegrityError as exc:
                raise _slug_conflict(values["slug"]) from exc
            conn.commit()
            item_id = result.inserted_primary_key[0]
        return self.get_item(item.kind, item_id)

    def get_item(self, kind: str, item_id: int) -> Optional[ContentItem]:
        table = _table_for(kind)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == item_id)).fetchone()
        return _row_to_item(kind, row) if row is not None else None

    def get_item_by_slug(self, kind: str, slug: str) -> Optional[ContentItem]:
        table = _table_for(kind)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.slug == slug)).fetchone()
        return _row_to_item(kind, row) if row is not None else None

    def list_items(
        self,
        kind: str,
        page: int = 1,
        page_size: int = 10,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> tuple[list[ContentItem], int]:
        """Return one page of items of kind plus the total number of matches.

        Newest first: published items by published_at, drafts by created_at.
        """
        table = _table_for(kind)
        conditions = []
        if status:
            _check_status(status, CONTENT_STATUSES)
            conditions.append(table.c.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(or_(func.lower(table.c.title).like(pattern), func.lower(table.c.summary).like(pattern)))

        order = func.coalesce(table.c.published_at, table.c.created_at).desc()
        query = (
            table.select()
            .where(*conditions)
            .order_by(order, table.c.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        count_query = select(func.count()).select_from(table).where(*conditions)
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query).fetchall()
        return [_row_to_item(kind, r) for r in rows], total

    def update_item(self, kind: str, item_id: int, regenerate_slug: bool = False, **fields: Any) -> Optional[ContentItem]:
        """Update an item and return it, or None if item_id does not exist.

        fields may hold shared columns and the kind's attribute columns.
        regenerate_slug=True rebuilds the slug from the (new) title unless an
        explicit slug is passed. The first transition to "published" stamps
        published_at; later transitions keep the original date.
        """
        table = _table_for(kind)
        attr_names = set(attribute_names(kind))
        unknown = set(fields) - _ITEM_MUTABLE_FIELDS - attr_names
        if unknown:
            raise ValueError(f"Unknown {kind} fields: {unknown!r}")

        current = self.get_item(kind, item_id)
        if current is None:
            return None
        if "status" in fields:
            _check_status(fields["status"], CONTENT_STATUSES)

        values = dict(fields)
        now = iso_utc()
        values["updated_at"] = now
        if values.get("status") == "published" and current.published_at is None:
            values["published_at"] = now

        with self.engine.connect() as conn:
            explicit_slug = values.pop("slug", None)
            if explicit_slug and explicit_slug != current.slug:
                values["slug"] = self._resolve_slug(conn, table, explicit_slug, current.title, exclude_id=item_id)
            elif regenerate_slug and not explicit_slug:
                title = values.get("title", current.title)
                values["slug"] = self._resolve_slug(conn, table, "", title, exclude_id=item_id)
            try:
                conn.execute(table.update().where(table.c.id == item_id).values(**values))
            except IntegrityError as exc:
                # Lost a race against a concurrent write of the same slug.
                raise _slug_conflict(values.get("slug", current.slug)) from exc
            conn.commit()
        return self.get_item(kind, item_id)

    def delete_item(self, kind: str, item_id: int) -> bool:
        """Delete an item and every comment attached to it."""
        table = _table_for(kind)
        with self.engine.connect() as conn:
            conn.execute(
                _comments.delete().where((_comments.c.target_type == kind) & (_comments.c.target_id == item_id))
            )
            result = conn.execute(table.delete().where(table.c.id == item_id))
            conn.commit()
        return result.rowcount > 0

    def _resolve_slug(
        self,
        conn: Connection,
        table: Table,
        requested: str,
        title: str,
        exclude_id: Optional[int] = None,
    ) -> str:
        def taken(candidate: str) -> bool:
            query = select(table.c.id).where(table.c.slug == candidate)
            if exclude_id is not None:
                query = query.where(table.c.id != exclude_id)
            return conn.execute(query).first() is not None

        if requested:
            slug = slugify(requested)
            if taken(slug):
                raise _slug_conflict(slug)
            return slug

        base = slugify(title)
        slug = base
        n = 2
        while taken(slug):
            slug = f"{base}-{n}"
            n += 1
        return slug

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, comment: Comment) -> Comment:
        _table_for(comment.target_type)
        _check_status(comment.status, COMMENT_STATUSES)
        now = iso_utc()
        with self.engine.connect() as conn:
            result = conn.execute(
                _comments.insert().values(
                    target_type=comment.target_type,
                    target_id=comment.target_id,
                    author_name=comment.author_name,
                    author_email=comment.author_email,
                    body=comment.body,
                    status=comment.status,
                    user_id=comment.user_id,
                    ip_address=comment.ip_address,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            comment_id = result.inserted_primary_key[0]
        return self.get_comment(comment_id)

    def get_comment(self, comment_id: int) -> Optional[Comment]:
        with self.engine.connect() as conn:
            row = conn.execute(_comments.select().where(_comments.c.id == comment_id)).fetchone()
        return _row_to_comment(row) if row is not None else None

    def list_comments(
        self,
        target_type: Optional[str] = None,
        target_id: Optional[int] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Comment], int]:
        """Oldest first, so threads read top to bottom."""
        conditions = []
        if target_type:
            conditions.append(_comments.c.target_type == target_type)
        if target_id is not None:
            conditions.append(_comments.c.target_id == target_id)
        if status:
            _check_status(status, COMMENT_STATUSES)
            conditions.append(_comments.c.status == status)

        query = (
            _comments.select()
            .where(*conditions)
            .order_by(_comments.c.created_at, _comments.c.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        count_query = select(func.count()).select_from(_comments).where(*conditions)
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query).fetchall()
        return [_row_to_comment(r) for r in rows], total

    def set_comment_status(self, comment_id: int, status: str) -> Optional[Comment]:
        _check_status(status, COMMENT_STATUSES)
        with self.engine.connect() as conn:
            result = conn.execute(
                _comments.update().where(_comments.c.id == comment_id).values(status=status, updated_at=iso_utc())
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_comment(comment_id)

    def delete_comment(self, comment_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_comments.delete().where(_comments.c.id == comment_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> Optional[Setting]:
        with self.engine.connect() as conn:
            row = conn.execute(_settings_table.select().where(_settings_table.c.key == key)).fetchone()
        return _row_to_setting(row) if row is not None else None

    def list_settings(self, public_only: bool = False) -> list[Setting]:
        query = _settings_table.select().order_by(_settings_table.c.key)
        if public_only:
            query = query.where(_settings_table.c.is_public == 1)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_setting(r) for r in rows]

    def upsert_setting(
        self,
        key: str,
        value: Optional[str],
        description: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> Setting:
        """Create or replace a setting. None for description/is_public keeps the stored value."""
        existing = self.get_setting(key)
        now = iso_utc()
        with self.engine.connect() as conn:
            if existing is None:
                conn.execute(
                    _settings_table.insert().values(
                        key=key,
                        value=value,
                        description=description,
                        is_public=1 if is_public else 0,
                        updated_at=now,
                    )
                )
            else:
                values: dict[str, Any] = {"value": value, "updated_at": now}
                if description is not None:
                    values["description"] = description
                if is_public is not None:
                    values["is_public"] = 1 if is_public else 0
                conn.execute(_settings_table.update().where(_settings_table.c.key == key).values(**values))
            conn.commit()
        return self.get_setting(key)

    def delete_setting(self, key: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_settings_table.delete().where(_settings_table.c.key == key))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def table_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self.engine.connect() as conn:
            for table in metadata.sorted_tables:
                counts[table.name] = conn.execute(select(func.count()).select_from(table)).scalar() or 0
        return counts

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _table_for(kind: str) -> Table:
    table = _tables.get(kind)
    if table is None:
        raise ContentError("unknown_kind", f"Unknown content type: {kind}.", 404)
    return table


def _check_status(status: str, allowed: tuple[str, ...]) -> None:
    if status not in allowed:
        raise ContentError("invalid_status", f"Status must be one of: {', '.join(allowed)}.", 400)


def _attribute_values(kind: str, attributes: dict[str, Any]) -> dict[str, Any]:
    """Keep only the attribute keys this kind has columns for."""
    names = attribute_names(kind)
    return {name: attributes[name] for name in names if name in attributes}


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_item(kind: str, row) -> ContentItem:
    mapping = row._mapping
    return ContentItem(
        id=row.id,
        kind=kind,
        title=row.title,
        slug=row.slug,
        summary=row.summary,
        body=row.body,
        image_url=row.image_url,
        status=row.status,
        author_id=row.author_id,
        published_at=row.published_at,
        attributes={name: mapping[name] for name in attribute_names(kind)},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row.id,
        target_type=row.target_type,
        target_id=row.target_id,
        author_name=row.author_name,
        author_email=row.author_email,
        body=row.body,
        status=row.status,
        user_id=row.user_id,
        ip_address=row.ip_address,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_setting(row) -> Setting:
    return Setting(
        key=row._mapping["key"],
        value=row.value,
        description=row.description,
        is_public=bool(row.is_public),
        updated_at=row.updated_at,
    )
