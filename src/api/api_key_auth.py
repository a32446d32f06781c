# coding: utf-8
"""
API Key Authentication

Protects endpoints called by internal collaborators (custody deposit
webhook, KYC reviewers) with a shared key.

Usage:
    @router.post("/protected-endpoint")
    async def protected(api_key: str = Depends(verify_api_key)):
        # Only accessible with valid API key
        pass
"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request
from loguru import logger


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, description="Service API key"),
) -> str:
    """
    Verify API key from request header

    Headers:
        X-API-Key: your-secret-api-key

    Raises:
        HTTPException 401: If API key is missing or invalid

    Returns:
        API key if valid
    """
    if not x_api_key:
        logger.warning("API key missing in request")
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide X-API-Key header."
        )

    expected = getattr(request.app.state, "service_api_key", "")
    if not expected:
        logger.error("SERVICE_API_KEY not configured in .env")
        raise HTTPException(
            status_code=500,
            detail="API key authentication not configured"
        )

    if not hmac.compare_digest(x_api_key, expected):
        logger.warning(f"Invalid API key attempt: {x_api_key[:8]}...")
        raise HTTPException(
            status_code=401,
            detail="Invalid API key"
        )

    return x_api_key
