import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


def _vision_status() -> str:
    if not settings.OPENAI_API_KEY:
        return "disabled"
    return "stub" if settings.vision_is_stubbed else "configured"


@router.get("/health", summary="Health check")
async def health(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Report database reachability and whether image reading is available."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as exc:  # noqa: BLE001
        db_status = "error"
        logger.exception("Database healthcheck failed", exc_info=exc)

    return {"status": "ok", "database": db_status, "vision": _vision_status(), "app": settings.APP_NAME}
