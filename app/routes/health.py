import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from app.database import get_session
from app.models.base import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/check")
async def health_check(session: AsyncSession = Depends(get_session)):
    db_status = "ok"

    try:
        # simple DB ping
        await session.exec(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check DB ping failed: {e}")
        db_status = "failed"

    return {
        "status": "ok",
        "database": db_status,
        "timestamp": utc_now().isoformat()
    }
