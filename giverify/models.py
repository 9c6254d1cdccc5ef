"""Pydantic models for request/response payloads."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, StrictStr, model_validator


class VerifyRequest(BaseModel):
    productId: StrictStr = Field(..., min_length=1, description="Identifier printed on the product's GI tag")


class VerificationResult(BaseModel):
    productId: str
    invalid: bool = False
    imageUrl: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)
    authorizedDistributor: str | None = None
    artisan: str | None = None
    source: Literal["primary", "secondary"] = "primary"

    @model_validator(mode="after")
    def _invalid_carries_no_data(self) -> "VerificationResult":
        # A rejected product never carries trusted attribute data.
        if self.invalid and (self.attributes or self.authorizedDistributor or self.artisan):
            raise ValueError("invalid results must not carry attributes")
        return self

    @property
    def has_data(self) -> bool:
        return not self.invalid and bool(self.attributes)


class VerifyResponse(BaseModel):
    success: bool = True
    data: VerificationResult


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    queue: str
    pending: int
    cached: int
    timeouts: int
    secondary_portal: bool
