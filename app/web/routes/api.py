"""JSON API routes."""
from __future__ import annotations

from fastapi import APIRouter

from app.domain.smart_import.mapping import fields_for
from app.domain.smart_import.schemas import ImportTarget
from app.web.routes import api_import

router = APIRouter()

router.include_router(api_import.router, prefix="/smart-import", tags=["smart-import"])


@router.get("/smart-import/fields/{import_type}")
async def list_target_fields(import_type: ImportTarget) -> dict:
    """Fields a column can be mapped to for the given import type."""
    return {"import_type": import_type.value, "fields": fields_for(import_type)}
