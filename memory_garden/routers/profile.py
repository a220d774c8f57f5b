"""
Profile API Router

The user profile is free-form JSON; it is only used to give the classifier
context about the person whose memories are being sorted.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from memory_garden.dependencies.services import Services, get_services
from memory_garden.schemas import ProfileResponse

logger = logging.getLogger("memory_garden.api.profile")

router = APIRouter(prefix="/v1/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse)
def get_profile(services: Services = Depends(get_services)) -> ProfileResponse:
    return ProfileResponse(profile=services.profiles.get_profile())


@router.put("", response_model=ProfileResponse)
def save_profile(
    profile: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> ProfileResponse:
    return ProfileResponse(profile=services.profiles.save_profile(profile))
