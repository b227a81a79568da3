import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text

from app.config import settings
from app.database import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/check")
def health_check(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "failed"

    body = {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "dialect": session.get_bind().dialect.name,
        "env": settings.env,
        "nombaConfigured": bool(settings.nomba_client_id and settings.nomba_account_id),
        "timestamp": datetime.utcnow().isoformat(),
    }
    return JSONResponse(status_code=200 if database == "ok" else 503, content=body)
