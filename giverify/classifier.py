"""Portal markup contract and classification of what the browser observed.

Every selector and rejection phrase the service depends on lives in the
portal profiles below. When a portal changes its markup, this is the only
module that needs editing; a sustained rise in timeouts is the usual symptom.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional, Tuple

from .config import settings
from .errors import ClassificationTimeout
from .models import VerificationResult
from .normalizer import is_usable_row, normalize_rows

logger = logging.getLogger(__name__)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]


@dataclass(frozen=True)
class PortalProfile:
    name: Literal["primary", "secondary"]
    url: str
    input_selector: str
    submit_selector: str
    table_selector: str
    rejection_selector: str
    rejection_phrase: str
    navigation_timeout_ms: int
    wait_until: WaitUntil = "domcontentloaded"
    fallback_wait_until: Optional[WaitUntil] = None
    ready_selector: Optional[str] = None
    fallback_input_selector: Optional[str] = None
    row_selector: str = "tr"
    cell_selector: str = "th, td"
    image_selector: str = "img"
    launch_args: Tuple[str, ...] = ("--no-sandbox", "--disable-setuid-sandbox")
    viewport: Optional[Tuple[int, int]] = None


def primary_portal() -> PortalProfile:
    return PortalProfile(
        name="primary",
        url=settings.portal_url,
        input_selector="input[name='qrcode']",
        submit_selector="#locationsubmit",
        table_selector="table",
        rejection_selector="h3",
        rejection_phrase="This is not a Genuine Product !",
        navigation_timeout_ms=settings.navigation_timeout_ms,
    )


def secondary_portal() -> PortalProfile:
    return PortalProfile(
        name="secondary",
        url=settings.secondary_portal_url,
        ready_selector=".featured-content #verifyform",
        input_selector="#verifyform input[type='text']",
        fallback_input_selector="#verifyform input",
        submit_selector="#locationsubmit",
        table_selector=".table-responsive table",
        row_selector="tbody tr",
        cell_selector="td",
        rejection_selector="h3.text-center.mb-4",
        rejection_phrase="This is not a Genuine Carpet !",
        navigation_timeout_ms=settings.secondary_navigation_timeout_ms,
        wait_until="networkidle",
        fallback_wait_until="domcontentloaded",
        launch_args=(
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-accelerated-2d-canvas",
            "--no-first-run",
            "--no-zygote",
            "--disable-gpu",
        ),
        viewport=(1920, 1080),
    )


@dataclass
class PortalObservation:
    """Raw facts the driver read off the rendered result page."""

    table_found: bool = False
    headings: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    image_url: Optional[str] = None


class Outcome(str, Enum):
    INVALID = "invalid"
    VALID_WITH_DATA = "valid_with_data"
    VALID_NO_DATA = "valid_no_data"
    TIMEOUT = "timeout"


def classify(observation: PortalObservation, profile: PortalProfile) -> Outcome:
    if any(heading.strip() == profile.rejection_phrase for heading in observation.headings):
        return Outcome.INVALID
    if not observation.table_found:
        return Outcome.TIMEOUT
    if any(is_usable_row(row) for row in observation.rows):
        return Outcome.VALID_WITH_DATA
    return Outcome.VALID_NO_DATA


def to_result(product_id: str, observation: PortalObservation, profile: PortalProfile) -> VerificationResult:
    """Shape an observation into a result, raising on timeout."""
    outcome = classify(observation, profile)
    logger.info("Classified product_id=%s portal=%s outcome=%s", product_id, profile.name, outcome.value)
    if outcome is Outcome.TIMEOUT:
        raise ClassificationTimeout(f"No result marker on {profile.name} portal")
    if outcome is Outcome.INVALID:
        return VerificationResult(productId=product_id, invalid=True, source=profile.name)
    if outcome is Outcome.VALID_NO_DATA:
        return VerificationResult(productId=product_id, imageUrl=observation.image_url, source=profile.name)
    normalized = normalize_rows(observation.rows)
    return VerificationResult(
        productId=product_id,
        imageUrl=observation.image_url,
        attributes=normalized.attributes,
        authorizedDistributor=normalized.authorized_distributor,
        artisan=normalized.artisan,
        source=profile.name,
    )
