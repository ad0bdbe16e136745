from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_404_NOT_FOUND

from evdms_rules.api.deps import settings_dep
from evdms_rules.auth.jwt import JwtConfig, issue_token
from evdms_rules.auth.models import Principal, Role
from evdms_rules.settings import Settings

router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=256)
    display_name: str | None = Field(default=None, max_length=256)
    role: Role
    dealer_id: str | None = Field(default=None, max_length=64)
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(settings_dep),
) -> DevTokenResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")

    principal = Principal(
        id=body.subject,
        display_name=body.display_name or body.subject,
        role=body.role,
        dealer_id=body.dealer_id,
    )
    token = issue_token(
        cfg=JwtConfig.from_settings(settings),
        principal=principal,
        ttl=timedelta(minutes=body.ttl_minutes),
    )
    return DevTokenResponse(access_token=token)
