"""Delivery area gate: zip codes inside the counties we deliver to."""
from __future__ import annotations

import re
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

from ..errors import InvalidInput

_ZIP_PATTERN = re.compile(r"\d{5}")

WESTCHESTER_NY = "Westchester County, NY"
FAIRFIELD_CT = "Fairfield County, CT"

_WESTCHESTER_ZIPS: FrozenSet[str] = frozenset(
    """
    10501 10502 10504 10505 10506 10507 10510 10511 10514 10518 10520 10522
    10523 10526 10527 10528 10530 10532 10533 10535 10536 10538 10540 10543
    10545 10546 10547 10548 10549 10552 10553 10560 10562 10566 10567 10570
    10573 10576 10577 10580 10583 10588 10589 10590 10591 10594 10595 10596
    10597 10598 10601 10603 10604 10605 10606 10607 10701 10703 10704 10705
    10706 10707 10708 10709 10710 10801 10803 10804 10805
    """.split()
)

_FAIRFIELD_ZIPS: FrozenSet[str] = frozenset(
    """
    06604 06605 06606 06607 06608 06610 06611 06612 06614 06615 06901 06902
    06903 06905 06906 06907 06850 06851 06853 06854 06855 06856 06857 06858
    06859 06860 06807 06830 06831 06836 06870 06878 06820 06840 06880 06881
    06883 06884 06888 06890 06897 06824 06825 06804 06810 06811 06812 06813
    06814 06877 06470 06875 06896 06829 06484 06784
    """.split()
)

SERVICE_AREA: Dict[str, str] = {
    **{zipcode: WESTCHESTER_NY for zipcode in _WESTCHESTER_ZIPS},
    **{zipcode: FAIRFIELD_CT for zipcode in _FAIRFIELD_ZIPS},
}


class ZipValidation(BaseModel):
    valid: bool
    normalized: str
    county: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def normalize_zip(value: Optional[str]) -> str:
    """First five-digit run in ``value`` (handles ZIP+4 and stray text), else ``""``."""

    if not value:
        return ""
    match = _ZIP_PATTERN.search(str(value))
    return match.group(0) if match else ""


def validate_zipcode(value: Optional[str]) -> ZipValidation:
    normalized = normalize_zip(value)
    county = SERVICE_AREA.get(normalized)
    return ZipValidation(valid=county is not None, normalized=normalized, county=county)


def require_serviceable_zip(value: Optional[str]) -> str:
    """Return the normalized zip or raise ``InvalidInput`` outside the delivery area."""

    result = validate_zipcode(value)
    if not result.valid:
        raise InvalidInput(
            "We don't deliver to this zip code yet",
            detail={"zipcode": result.normalized or value},
        )
    return result.normalized


__all__ = [
    "FAIRFIELD_CT",
    "SERVICE_AREA",
    "WESTCHESTER_NY",
    "ZipValidation",
    "normalize_zip",
    "require_serviceable_zip",
    "validate_zipcode",
]
