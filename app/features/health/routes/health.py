from fastapi import APIRouter, status
from sqlalchemy import text

from app.platform.config import settings
from app.platform.db.session import engine
from app.platform.response import api_response


router = APIRouter()

@router.get("/health", tags=["health"])
def health_check():
    return api_response(
        data={"status": "ok", "service": settings.APP_NAME},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )


@router.get("/health/db", tags=["health"])
def database_health_check():
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as e:
        return api_response(
            data={"status": "unavailable", "service": settings.APP_NAME},
            message=f"Database unavailable: {e.__class__.__name__}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return api_response(
        data={"status": "ok", "service": settings.APP_NAME},
        message="Database is reachable",
        status_code=status.HTTP_200_OK,
    )
