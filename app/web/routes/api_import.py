"""API routes for the smart import wizard (analyze, prepare, execute)."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile, status
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import rate_limiter
from app.domain.smart_import.schemas import (
    ColumnMapping,
    DestinationConfig,
    FileAnalysis,
    ImportResult,
    ImportTarget,
    MappableField,
    PreparedImportData,
)
from app.domain.smart_import.store import SqlAlchemyImportStore
from app.domain.smart_import.wizard import SmartImportWizard
from app.services.vision_client import DocumentVisionClient

router = APIRouter()


class ImportRequestConfig(BaseModel):
    """Choices the client made in the mapping, destination and review steps."""

    import_type: Optional[ImportTarget] = None
    mappings: Optional[List[ColumnMapping]] = None
    destination: DestinationConfig = Field(default_factory=DestinationConfig)
    selected_ids: Optional[List[int]] = None
    fingerprint: Optional[str] = None


class PrepareResponse(BaseModel):
    import_type: ImportTarget
    missing_required: List[MappableField]
    warnings: List[str]
    fingerprint: str
    prepared: PreparedImportData


async def get_user_id(x_user_id: Optional[str] = Header(None)) -> int:
    """Caller identity as set by the upstream authentication layer."""
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid X-User-Id header")
    return int(x_user_id.strip())


def get_vision_client() -> Optional[DocumentVisionClient]:
    if not settings.OPENAI_API_KEY:
        return None
    return DocumentVisionClient()


async def get_wizard(
    user_id: int = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    vision_client: Optional[DocumentVisionClient] = Depends(get_vision_client),
) -> SmartImportWizard:
    return SmartImportWizard(SqlAlchemyImportStore(db, user_id), vision_client=vision_client)


async def enforce_import_rate_limit(user_id: int = Depends(get_user_id)) -> None:
    allowed = await rate_limiter.is_allowed(
        f"smart-import:{user_id}",
        settings.IMPORT_RATE_LIMIT_MAX,
        settings.IMPORT_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many import attempts. Please try again later.",
        )


def _parse_config(raw: Optional[str]) -> ImportRequestConfig:
    if not raw:
        return ImportRequestConfig()
    try:
        return ImportRequestConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"code": "invalid_config", "message": "Invalid import config payload", "errors": exc.errors(include_url=False)},
        ) from exc


async def _prepare(wizard: SmartImportWizard, file: UploadFile, config: ImportRequestConfig) -> PreparedImportData:
    data = await file.read()
    await wizard.analyze(file.filename, file.content_type, data)
    if config.import_type is not None:
        wizard.choose_import_type(config.import_type)
    wizard.confirm_mapping(config.mappings)
    return await wizard.prepare(config.destination)


@router.post("/analyze", response_model=FileAnalysis)
async def analyze_upload(
    file: UploadFile = File(...),
    wizard: SmartImportWizard = Depends(get_wizard),
    _limit: None = Depends(enforce_import_rate_limit),
) -> FileAnalysis:
    """Detect the file type, extract its table and suggest a mapping."""
    data = await file.read()
    return await wizard.analyze(file.filename, file.content_type, data)


@router.post("/prepare", response_model=PrepareResponse)
async def prepare_upload(
    file: UploadFile = File(...),
    config: Optional[str] = Form(None),
    wizard: SmartImportWizard = Depends(get_wizard),
    _limit: None = Depends(enforce_import_rate_limit),
) -> PrepareResponse:
    """Apply the mapping and destination to every row and report validity."""
    request_config = _parse_config(config)
    prepared = await _prepare(wizard, file, request_config)
    validation = wizard.mapping_validation
    return PrepareResponse(
        import_type=wizard.config.import_type,
        missing_required=validation.missing_required if validation else [],
        warnings=wizard.warnings,
        fingerprint=wizard.fingerprint,
        prepared=prepared,
    )


@router.post("/execute", response_model=ImportResult)
async def execute_upload(
    file: UploadFile = File(...),
    config: Optional[str] = Form(None),
    wizard: SmartImportWizard = Depends(get_wizard),
    _limit: None = Depends(enforce_import_rate_limit),
) -> ImportResult:
    """Prepare again and persist the selected rows of the reviewed preview."""
    request_config = _parse_config(config)
    await _prepare(wizard, file, request_config)
    wizard.verify_preview(request_config.fingerprint)
    if request_config.selected_ids is not None:
        wizard.set_selected(request_config.selected_ids)
    return await wizard.execute()
