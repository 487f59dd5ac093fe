"""
API request and response models for content, comments and settings.

Each content kind has a Create and an Update model built from the shared
ContentCreate/ContentUpdate plus that kind's own fields, so OpenAPI shows
exactly which columns products or events accept. KIND_SCHEMAS maps a kind
to its pair and is what api/routes/v1/content.py iterates over.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from api.models import EMAIL_PATTERN, Pagination
from content.models import Comment, ContentItem, Setting

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ContentStatusEnum(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class CommentStatusEnum(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class KindEnum(str, Enum):
    news = "news"
    products = "products"
    projects = "projects"
    services = "services"
    events = "events"


# ---------------------------------------------------------------------------
# Content -- shared fields
# ---------------------------------------------------------------------------


class ContentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255, pattern=SLUG_PATTERN)
    summary: Optional[str] = Field(default=None, max_length=1000)
    body: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    status: ContentStatusEnum = ContentStatusEnum.draft


class ContentUpdate(BaseModel):
    """Omitted fields are left unchanged.

    regenerate_slug=true rebuilds the slug from the title (the new one, if
    the title is being changed in the same request).
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255, pattern=SLUG_PATTERN)
    summary: Optional[str] = Field(default=None, max_length=1000)
    body: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    status: Optional[ContentStatusEnum] = None
    regenerate_slug: bool = False


# ---------------------------------------------------------------------------
# Content -- kind-specific fields
# ---------------------------------------------------------------------------


class NewsFields(BaseModel):
    category: Optional[str] = Field(default=None, max_length=100)


class ProductFields(BaseModel):
    price: Optional[float] = Field(default=None, ge=0)
    sku: Optional[str] = Field(default=None, max_length=100)
    stock: Optional[int] = Field(default=None, ge=0)


class ProjectFields(BaseModel):
    client: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    completed_on: Optional[str] = Field(default=None, pattern=DATE_PATTERN)


class ServiceFields(BaseModel):
    icon: Optional[str] = Field(default=None, max_length=255)
    sort_order: Optional[int] = None


class EventFields(BaseModel):
    location: Optional[str] = Field(default=None, max_length=255)
    starts_at: Optional[str] = Field(default=None, max_length=32)
    ends_at: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def ends_after_start(self) -> "EventFields":
        # Both are ISO 8601 strings from the same client, so string order is time order.
        if self.starts_at and self.ends_at and self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self


class NewsCreate(ContentCreate, NewsFields):
    pass


class NewsUpdate(ContentUpdate, NewsFields):
    pass


class ProductCreate(ContentCreate, ProductFields):
    pass


class ProductUpdate(ContentUpdate, ProductFields):
    pass


class ProjectCreate(ContentCreate, ProjectFields):
    pass


class ProjectUpdate(ContentUpdate, ProjectFields):
    pass


class ServiceCreate(ContentCreate, ServiceFields):
    pass


class ServiceUpdate(ContentUpdate, ServiceFields):
    pass


class EventCreate(ContentCreate, EventFields):
    pass


class EventUpdate(ContentUpdate, EventFields):
    pass


# kind -> (create model, update model, kind-specific field names)
KIND_SCHEMAS: dict[str, tuple[type[ContentCreate], type[ContentUpdate], tuple[str, ...]]] = {
    "news": (NewsCreate, NewsUpdate, tuple(NewsFields.model_fields)),
    "products": (ProductCreate, ProductUpdate, tuple(ProductFields.model_fields)),
    "projects": (ProjectCreate, ProjectUpdate, tuple(ProjectFields.model_fields)),
    "services": (ServiceCreate, ServiceUpdate, tuple(ServiceFields.model_fields)),
    "events": (EventCreate, EventUpdate, tuple(EventFields.model_fields)),
}


class ContentResponse(BaseModel):
    """A content item. Kind-specific columns appear as extra top-level keys."""

    model_config = ConfigDict(extra="allow")

    id: int
    kind: str
    title: str
    slug: str
    summary: Optional[str] = None
    body: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    author_id: Optional[int] = None
    published_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_item(cls, item: ContentItem) -> "ContentResponse":
        return cls(
            id=item.id,
            kind=item.kind,
            title=item.title,
            slug=item.slug,
            summary=item.summary,
            body=item.body,
            image_url=item.image_url,
            status=item.status,
            author_id=item.author_id,
            published_at=item.published_at,
            created_at=item.created_at,
            updated_at=item.updated_at,
            **item.attributes,
        )


class ContentListResponse(BaseModel):
    items: list[ContentResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    target_type: KindEnum
    target_id: int = Field(ge=1)
    author_name: str = Field(min_length=1, max_length=255)
    author_email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    body: str = Field(min_length=1, max_length=5000)


class CommentModerate(BaseModel):
    status: CommentStatusEnum


class CommentResponse(BaseModel):
    """author_email and ip_address are only filled in for editors and admins."""

    id: int
    target_type: str
    target_id: int
    author_name: str
    body: str
    status: str
    created_at: str
    author_email: Optional[str] = None
    ip_address: Optional[str] = None

    @classmethod
    def from_comment(cls, comment: Comment, private: bool = False) -> "CommentResponse":
        return cls(
            id=comment.id,
            target_type=comment.target_type,
            target_id=comment.target_id,
            author_name=comment.author_name,
            body=comment.body,
            status=comment.status,
            created_at=comment.created_at,
            author_email=comment.author_email if private else None,
            ip_address=comment.ip_address if private else None,
        )


class CommentListResponse(BaseModel):
    items: list[CommentResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

SETTING_KEY_PATTERN = r"^[A-Za-z0-9_.-]{1,100}$"


class SettingUpsert(BaseModel):
    """description / is_public omitted on update keep their stored values."""

    value: Optional[str] = Field(default=None, max_length=10000)
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: Optional[bool] = None


class SettingResponse(BaseModel):
    key: str
    value: Optional[str]
    description: Optional[str]
    is_public: bool
    updated_at: str

    @classmethod
    def from_setting(cls, setting: Setting) -> "SettingResponse":
        return cls(
            key=setting.key,
            value=setting.value,
            description=setting.description,
            is_public=setting.is_public,
            updated_at=setting.updated_at,
        )
