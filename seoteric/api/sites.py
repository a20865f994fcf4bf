"""
Site API routes.

- GET  /api/sites: List the caller's sites
- POST /api/sites: Create a site (site limit enforced)
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from seoteric.core.auth import get_current_user_id
from seoteric.core.errors import BillingUnavailableError
from seoteric.features.billing.provider import BillingProviderError
from seoteric.features.sites.service import create_site, list_sites


router = APIRouter(prefix="/sites", tags=["sites"])


class CreateSiteRequest(BaseModel):
    name: str
    domain: str
    country: str = ""
    industry: str = ""

    @field_validator("name", "domain", "country", "industry")
    @classmethod
    def _trim(cls, value: str) -> str:
        return value.strip()


class SiteOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    domain: str
    country: str = ""
    industry: str = ""
    created_at: datetime


@router.get("", response_model=List[SiteOut])
async def get_sites(user_id: str = Depends(get_current_user_id)):
    return [SiteOut(**site) for site in list_sites(user_id)]


@router.post("", response_model=SiteOut, status_code=201)
async def post_site(body: CreateSiteRequest, user_id: str = Depends(get_current_user_id)):
    """
    Errors:
        400: Blank name or domain
        403: LIMIT_EXCEEDED (feature "sites")
        503: Billing provider unreachable
    """
    try:
        site = create_site(
            user_id,
            name=body.name,
            domain=body.domain,
            country=body.country,
            industry=body.industry,
        )
    except BillingProviderError as e:
        raise BillingUnavailableError(f"Billing provider unavailable: {e}")
    return SiteOut(**site)
