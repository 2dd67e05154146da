"""Database engine, session factory and FastAPI dependencies."""

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from shega.core.config import settings

# Database engine and session factory
engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


def get_command_dispatcher(request: Request):
    """Command dispatcher built during application startup."""
    dispatcher = getattr(request.app.state, "command_dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Command dispatch unavailable",
        )
    return dispatcher

