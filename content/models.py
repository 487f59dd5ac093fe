"""
content/models.py -- Domain dataclasses for the CMS content catalogue.

These are pure data containers with zero logic. Slug generation, publish
stamping and status checks live in content/store.py.

Separation of concerns: these dataclasses are the CMS's domain truth, just as
auth/models.py is the account layer's. Neither layer imports the other.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

KINDS = ("news", "products", "projects", "services", "events")
CONTENT_STATUSES = ("draft", "published", "archived")
COMMENT_STATUSES = ("pending", "approved", "rejected")


@dataclass
class ContentItem:
    """One news post, product, project, service or event.

    Columns every kind shares are plain fields. Kind-specific columns
    (price for products, starts_at for events, ...) travel in attributes,
    keyed by column name.

    id is None before the record is written to the database.
    """

    kind: str  # one of KINDS
    title: str
    slug: str = ""  # generated from title when empty
    summary: Optional[str] = None
    body: Optional[str] = None
    image_url: Optional[str] = None
    status: str = "draft"  # "draft" | "published" | "archived"
    author_id: Optional[int] = None
    published_at: Optional[str] = None  # ISO 8601, set on first publish
    attributes: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Comment:
    """A visitor comment attached to a content item.

    New comments are "pending" and stay hidden from the public list until an
    editor approves them.
    """

    target_type: str  # a content kind
    target_id: int
    author_name: str
    body: str
    author_email: Optional[str] = None
    status: str = "pending"  # "pending" | "approved" | "rejected"
    user_id: Optional[int] = None  # set when the commenter was logged in
    ip_address: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Setting:
    """A site-wide key/value setting. is_public controls anonymous visibility."""

    key: str
    value: Optional[str] = None
    description: Optional[str] = None
    is_public: bool = False
    updated_at: str = ""
