from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UTM_FIELDS = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "referrer",
)


class LeadRecord(BaseModel):
    """A single funnel submission, as it travels to the ingestion endpoint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    email: str = Field(max_length=254)
    phone: str = Field(default="", max_length=20)
    brand: str = Field(max_length=100)
    site_url: str = Field(default="", alias="siteUrl", max_length=500)
    platform: str = ""
    ad_spend: str = Field(default="", alias="adSpend")
    business_type: str = Field(default="", alias="businessType")
    submitted_at: str = Field(alias="submittedAt")

    utm_source: str = ""
    utm_medium: str = ""
    utm_campaign: str = ""
    utm_content: str = ""
    utm_term: str = ""
    referrer: str = ""

    sheet_name: Optional[str] = Field(default=None, alias="sheetName")

    def to_form_fields(self) -> Dict[str, str]:
        """Wire representation: camelCase names, ``sheetName`` only when routed."""
        return self.model_dump(by_alias=True, exclude_none=True)


class IngestAck(BaseModel):
    status: Literal["ok", "error"]
    sheet: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)
