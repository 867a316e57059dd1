"""API schemas for delivery area checks."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ZipCheckResponse(BaseModel):
    zipcode: str
    valid: bool
    county: Optional[str] = None
    message: str

    model_config = ConfigDict(populate_by_name=True)
