"""
api/routes/v1/system.py -- Operational endpoints for administrators.

Routes:
  GET /api/v1/system/db-status -- dialect, connectivity and per-table row counts (admin only)

The public liveness probe is /api/v1/health in api/main.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from api.models import DbStatusResponse
from auth.dependencies import require_admin
from auth.models import User
from auth.store import UserStore
from content.store import ContentStore

logger = logging.getLogger("vrccms.api")

router = APIRouter(prefix="/system")


@router.get("/db-status", response_model=DbStatusResponse)
def db_status(request: Request, current_user: User = Depends(require_admin)) -> DbStatusResponse:
    """Report database reachability and table sizes.

    A database error is reported in the body (status="error") rather than as
    a 500 so the admin console can render it.
    """
    user_store: UserStore = request.app.state.user_store
    content_store: ContentStore = request.app.state.content_store
    dialect = user_store.engine.dialect.name
    try:
        tables = {**user_store.table_counts(), **content_store.table_counts()}
    except SQLAlchemyError:
        logger.exception("Database status check failed")
        return DbStatusResponse(status="error", dialect=dialect, tables={})
    return DbStatusResponse(status="ok", dialect=dialect, tables=dict(sorted(tables.items())))
