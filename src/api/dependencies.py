# coding: utf-8
"""
Shared FastAPI dependencies

The service container is built once at startup and kept on app.state.
"""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Service container of the running app"""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


async def get_session(
    services: ServiceContainer = Depends(get_services),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting a read-only database session

    Ledger writes open their own sessions inside a wallet scope.
    """
    async with services.session_maker() as session:
        yield session
