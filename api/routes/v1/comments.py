"""
api/routes/v1/comments.py -- Visitor comments and moderation.

Routes:
  POST   /api/v1/comments       -- post a comment (public, rate limited)
  GET    /api/v1/comments       -- list comments (public: approved only)
  PATCH  /api/v1/comments/{id}  -- approve / reject (editor or admin)
  DELETE /api/v1/comments/{id}  -- delete (editor or admin)

New comments always start as "pending". Only published items accept
comments; anything else answers 404 exactly like a missing item.
Commenter email and IP are shown to editors and admins only.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.content_models import (
    CommentCreate,
    CommentListResponse,
    CommentModerate,
    CommentResponse,
    CommentStatusEnum,
    KindEnum,
)
from api.limiter import limiter
from api.models import Pagination
from api.routes.v1.auth import client_info
from auth.dependencies import require_editor, try_get_current_user
from auth.models import User
from auth.roles import EDITOR, has_minimum_role
from content.models import Comment
from content.store import ContentStore
from core.config import get_settings

_settings = get_settings()

router = APIRouter(prefix="/comments")


def _is_moderator(user: Optional[User]) -> bool:
    return user is not None and has_minimum_role(user, EDITOR)


@router.post("", response_model=CommentResponse, status_code=201)
@limiter.limit(_settings.comment_rate_limit)
def create_comment(
    request: Request,
    body: CommentCreate,
    viewer: Optional[User] = Depends(try_get_current_user),
) -> CommentResponse:
    store: ContentStore = request.app.state.content_store
    target = store.get_item(body.target_type.value, body.target_id)
    if target is None or target.status != "published":
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Comment target not found."},
        )
    comment = store.create_comment(
        Comment(
            target_type=body.target_type.value,
            target_id=body.target_id,
            author_name=body.author_name,
            author_email=body.author_email,
            body=body.body,
            user_id=viewer.id if viewer else None,
            ip_address=client_info(request).ip_address,
        )
    )
    return CommentResponse.from_comment(comment, private=_is_moderator(viewer))


@router.get("", response_model=CommentListResponse)
def list_comments(
    request: Request,
    target_type: Optional[KindEnum] = None,
    target_id: Optional[int] = Query(default=None, ge=1),
    status: Optional[CommentStatusEnum] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    viewer: Optional[User] = Depends(try_get_current_user),
) -> CommentListResponse:
    """Approved comments for everyone; any status for editors and admins."""
    store: ContentStore = request.app.state.content_store
    moderator = _is_moderator(viewer)
    if moderator:
        status_filter = status.value if status else None
    else:
        status_filter = "approved"
    comments, total = store.list_comments(
        target_type=target_type.value if target_type else None,
        target_id=target_id,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return CommentListResponse(
        items=[CommentResponse.from_comment(c, private=moderator) for c in comments],
        pagination=Pagination.build(page, page_size, total),
    )


@router.patch("/{comment_id}", response_model=CommentResponse)
def moderate_comment(
    request: Request,
    comment_id: int,
    body: CommentModerate,
    current_user: User = Depends(require_editor),
) -> CommentResponse:
    store: ContentStore = request.app.state.content_store
    comment = store.set_comment_status(comment_id, body.status.value)
    if comment is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Comment not found."},
        )
    return CommentResponse.from_comment(comment, private=True)


@router.delete("/{comment_id}", status_code=204)
def delete_comment(
    request: Request,
    comment_id: int,
    current_user: User = Depends(require_editor),
) -> Response:
    store: ContentStore = request.app.state.content_store
    if not store.delete_comment(comment_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Comment not found."},
        )
    return Response(status_code=204)
