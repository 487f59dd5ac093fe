"""
api/routes/v1/content.py -- CRUD endpoints for every content kind.

One router per kind, built by build_router() from the kind's request models
in api/content_models.KIND_SCHEMAS:

  GET    /api/v1/{kind}               -- paginated list (public: published only)
  GET    /api/v1/{kind}/{id_or_slug}  -- one item (public: published only)
  POST   /api/v1/{kind}               -- create (editor or admin)
  PUT    /api/v1/{kind}/{id}          -- update (editor or admin)
  DELETE /api/v1/{kind}/{id}          -- delete, with its comments (editor or admin)

{kind} is one of news, products, projects, services, events.

Visibility: anonymous callers and customers see published items only; an
unpublished item answers 404 rather than 403 so drafts cannot be probed.
Editors and admins see everything and may filter by status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.content_models import KIND_SCHEMAS, ContentListResponse, ContentResponse, ContentStatusEnum
from api.models import Pagination
from auth.dependencies import require_editor, try_get_current_user
from auth.models import User
from auth.roles import EDITOR, has_minimum_role
from content.models import KINDS, ContentItem
from content.store import ContentStore


def _can_see_unpublished(user: Optional[User]) -> bool:
    return user is not None and has_minimum_role(user, EDITOR)


def _not_found(kind: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": f"{kind.capitalize()} item not found."},
    )


def build_router(kind: str) -> APIRouter:
    """Return the CRUD router for one content kind."""
    create_model, update_model, attr_fields = KIND_SCHEMAS[kind]
    router = APIRouter(prefix=f"/{kind}")

    @router.get("", response_model=ContentListResponse, name=f"list_{kind}")
    def list_items(
        request: Request,
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=10, ge=1, le=100),
        status: Optional[ContentStatusEnum] = None,
        search: Optional[str] = Query(default=None, max_length=100),
        viewer: Optional[User] = Depends(try_get_current_user),
    ) -> ContentListResponse:
        store: ContentStore = request.app.state.content_store
        if _can_see_unpublished(viewer):
            status_filter = status.value if status else None
        else:
            status_filter = "published"
        items, total = store.list_items(kind, page=page, page_size=page_size, status=status_filter, search=search)
        return ContentListResponse(
            items=[ContentResponse.from_item(i) for i in items],
            pagination=Pagination.build(page, page_size, total),
        )

    @router.get("/{id_or_slug}", response_model=ContentResponse, name=f"get_{kind}")
    def get_item(
        request: Request,
        id_or_slug: str,
        viewer: Optional[User] = Depends(try_get_current_user),
    ) -> ContentResponse:
        store: ContentStore = request.app.state.content_store
        item = store.get_item(kind, int(id_or_slug)) if id_or_slug.isdigit() else None
        if item is None:
            # Titles like "2025" produce all-digit slugs.
            item = store.get_item_by_slug(kind, id_or_slug)
        if item is None or (item.status != "published" and not _can_see_unpublished(viewer)):
            raise _not_found(kind)
        return ContentResponse.from_item(item)

    @router.post("", response_model=ContentResponse, status_code=201, name=f"create_{kind}")
    def create_item(
        request: Request,
        body: create_model,
        current_user: User = Depends(require_editor),
    ) -> ContentResponse:
        store: ContentStore = request.app.state.content_store
        item = store.create_item(
            ContentItem(
                kind=kind,
                title=body.title,
                slug=body.slug or "",
                summary=body.summary,
                body=body.body,
                image_url=body.image_url,
                status=body.status.value,
                author_id=current_user.id,
                attributes={f: getattr(body, f) for f in attr_fields if getattr(body, f) is not None},
            )
        )
        return ContentResponse.from_item(item)

    @router.put("/{item_id}", response_model=ContentResponse, name=f"update_{kind}")
    def update_item(
        request: Request,
        item_id: int,
        body: update_model,
        current_user: User = Depends(require_editor),
    ) -> ContentResponse:
        store: ContentStore = request.app.state.content_store
        fields = body.model_dump(mode="json", exclude_unset=True, exclude={"regenerate_slug"})
        # title and status are NOT NULL; an explicit null means "leave as is".
        for required in ("title", "status", "slug"):
            if fields.get(required, "") is None:
                fields.pop(required)
        item = store.update_item(kind, item_id, regenerate_slug=body.regenerate_slug, **fields)
        if item is None:
            raise _not_found(kind)
        return ContentResponse.from_item(item)

    @router.delete("/{item_id}", status_code=204, name=f"delete_{kind}")
    def delete_item(
        request: Request,
        item_id: int,
        current_user: User = Depends(require_editor),
    ) -> Response:
        store: ContentStore = request.app.state.content_store
        if not store.delete_item(kind, item_id):
            raise _not_found(kind)
        return Response(status_code=204)

    return router


routers: list[APIRouter] = [build_router(kind) for kind in KINDS]
