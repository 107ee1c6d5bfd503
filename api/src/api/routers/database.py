"""Authenticated query proxy for the workspace tables."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_access_context, get_db
from api.services.access import AccessContext
from api.services.database_proxy import DatabaseQueryRequest, execute_query, response_status

router = APIRouter()


@router.post("")
async def run_query(
    body: DatabaseQueryRequest,
    ctx: AccessContext = Depends(get_access_context),
    db: AsyncSession = Depends(get_db),
):
    result = await execute_query(db, body, ctx)
    return JSONResponse(content=jsonable_encoder(result), status_code=response_status(result))
