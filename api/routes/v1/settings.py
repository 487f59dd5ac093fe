"""
api/routes/v1/settings.py -- Site settings (key/value).

Routes:
  GET    /api/v1/settings        -- public settings only (no auth)
  GET    /api/v1/settings/all    -- every setting (admin only)
  PUT    /api/v1/settings/{key}  -- create or update (admin only)
  DELETE /api/v1/settings/{key}  -- delete (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from api.content_models import SETTING_KEY_PATTERN, SettingResponse, SettingUpsert
from auth.dependencies import require_admin
from auth.models import User
from content.store import ContentStore

router = APIRouter(prefix="/settings")


@router.get("", response_model=list[SettingResponse])
def public_settings(request: Request) -> list[SettingResponse]:
    store: ContentStore = request.app.state.content_store
    return [SettingResponse.from_setting(s) for s in store.list_settings(public_only=True)]


@router.get("/all", response_model=list[SettingResponse])
def all_settings(request: Request, current_user: User = Depends(require_admin)) -> list[SettingResponse]:
    store: ContentStore = request.app.state.content_store
    return [SettingResponse.from_setting(s) for s in store.list_settings()]


@router.put("/{key}", response_model=SettingResponse)
def upsert_setting(
    request: Request,
    body: SettingUpsert,
    key: str = Path(pattern=SETTING_KEY_PATTERN),
    current_user: User = Depends(require_admin),
) -> SettingResponse:
    store: ContentStore = request.app.state.content_store
    setting = store.upsert_setting(key, body.value, description=body.description, is_public=body.is_public)
    return SettingResponse.from_setting(setting)


@router.delete("/{key}", status_code=204)
def delete_setting(
    request: Request,
    key: str = Path(pattern=SETTING_KEY_PATTERN),
    current_user: User = Depends(require_admin),
) -> Response:
    store: ContentStore = request.app.state.content_store
    if not store.delete_setting(key):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Setting not found."},
        )
    return Response(status_code=204)
