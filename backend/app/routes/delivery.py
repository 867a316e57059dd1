"""API routes for delivery area checks."""
from __future__ import annotations

from fastapi import APIRouter

from ..delivery import validate_zipcode
from ..schemas.delivery import ZipCheckResponse

router = APIRouter(prefix="/api/delivery", tags=["delivery"])


@router.get("/zipcodes/{zipcode}", response_model=ZipCheckResponse)
def check_zipcode(zipcode: str) -> ZipCheckResponse:
    result = validate_zipcode(zipcode)
    if result.valid:
        message = f"Great news! We deliver to {result.county}."
    else:
        message = "We don't deliver to this zip code yet"
    return ZipCheckResponse(
        zipcode=result.normalized or zipcode,
        valid=result.valid,
        county=result.county,
        message=message,
    )
