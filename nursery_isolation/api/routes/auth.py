# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Passwordless parent login endpoints.

- POST /auth/magic-link - Request a login link for a parent
- GET /auth/magic-link/verify - Redeem a login link for an access token

Both paths are public; the signed link token is the credential.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from nursery_isolation.api.dependencies import get_magic_link_service
from nursery_isolation.core.config import get_settings
from nursery_isolation.domains.auth.magic_link import MagicLinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

MAGIC_LINK_SENT = "If an account exists, a magic link has been sent"


class MagicLinkRequest(BaseModel):
    """Magic link request body."""
    subdomain: str = Field(min_length=1, max_length=63, description="Nursery subdomain")
    email: str = Field(min_length=3, max_length=255, description="Parent email address")


class MagicLinkResponse(BaseModel):
    """Magic link request acknowledgement."""
    message: str = Field(description="Acknowledgement that never reveals the account")
    token: str | None = Field(None, description="Link token, development only")


class TokenResponse(BaseModel):
    """Access token issued for a redeemed link."""
    access_token: str = Field(description="JWT access token")
    token_type: str = Field("Bearer", description="Token type")
    expires_in: int = Field(description="Access token lifetime in seconds")


@router.post(
    "/magic-link",
    response_model=MagicLinkResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_magic_link(
    body: MagicLinkRequest,
    service: MagicLinkService = Depends(get_magic_link_service),
) -> MagicLinkResponse:
    """Issue a login link for a parent of the named nursery.

    The response is the same whether or not the parent exists. Outside
    development the token is only delivered by mail.
    """
    token = await service.request_magic_link(body.subdomain, body.email)
    if token is not None and get_settings().is_development:
        return MagicLinkResponse(message=MAGIC_LINK_SENT, token=token)
    return MagicLinkResponse(message=MAGIC_LINK_SENT)


@router.get("/magic-link/verify", response_model=TokenResponse)
async def verify_magic_link(
    token: str = Query(min_length=1),
    service: MagicLinkService = Depends(get_magic_link_service),
) -> TokenResponse:
    """Exchange a login link token for an access token."""
    access_token = await service.verify_magic_link(token)
    return TokenResponse(
        access_token=access_token,
        expires_in=get_settings().jwt.access_token_expire_minutes * 60,
    )
