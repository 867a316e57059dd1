"""Delivery area checks."""

from .zipcodes import (
    FAIRFIELD_CT,
    SERVICE_AREA,
    WESTCHESTER_NY,
    ZipValidation,
    normalize_zip,
    require_serviceable_zip,
    validate_zipcode,
)

__all__ = [
    "FAIRFIELD_CT",
    "SERVICE_AREA",
    "WESTCHESTER_NY",
    "ZipValidation",
    "normalize_zip",
    "require_serviceable_zip",
    "validate_zipcode",
]
