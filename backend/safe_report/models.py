from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator, validate_email
from typing import Optional, List, Any, Union


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python; unknown keys pass through to the page
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class CapTableRow(_WireModel):
    name: str = ""
    pre_shares: float = Field(0, alias="preShares")
    post_shares: float = Field(0, alias="postShares")
    is_founder: bool = Field(False, alias="isFounder")
    is_safe: bool = Field(False, alias="isSafe")
    is_investor: bool = Field(False, alias="isInvestor")
    badge: Optional[str] = None
    badge_style: Optional[str] = Field(None, alias="badgeStyle")
    # SAFE terms (investors may carry investment too)
    investment: Optional[float] = None
    cap: Optional[float] = None
    discount: Optional[Any] = None
    safe_type: Optional[str] = Field(None, alias="type")

    @field_validator("pre_shares", "post_shares", mode="before")
    @classmethod
    def missing_shares_are_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class ReportSummary(_WireModel):
    ownership_pre: Optional[str] = Field(None, alias="ownershipPre")
    ownership_post: Optional[str] = Field(None, alias="ownershipPost")
    dilution: Optional[str] = None
    post_money: Optional[str] = Field(None, alias="postMoney")
    price_per_share: Optional[str] = Field(None, alias="pricePerShare")
    total_shares: Optional[str] = Field(None, alias="totalShares")
    total_raised: Optional[str] = Field(None, alias="totalRaised")

    @field_validator("*", mode="before")
    @classmethod
    def numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class ReportPayload(_WireModel):
    round_name: Optional[str] = Field(None, alias="roundName")
    timestamp: Optional[str] = None
    summary: ReportSummary = Field(default_factory=ReportSummary)
    rows: List[CapTableRow] = Field(default_factory=list)
    option_pool: Optional[str] = Field(None, alias="optionPool")
    safe_amount: Optional[float] = Field(None, alias="safeAmount")

    @field_validator("option_pool", mode="before")
    @classmethod
    def option_pool_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class LeadFields(_WireModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    company_name: Optional[str] = Field(None, alias="companyName")
    company: Optional[str] = None
    subscribe: Optional[bool] = None
    newsletter: Optional[bool] = None


class SummaryFields(LeadFields):
    founder_ownership: Optional[str] = Field(None, alias="founderOwnership")
    founder_dilution: Optional[str] = Field(None, alias="founderDilution")
    post_money: Optional[str] = Field(None, alias="postMoney")
    total_raised: Optional[str] = Field(None, alias="totalRaised")


class LeadRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    first_name: str = Field("Unknown", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: str
    company: str = ""
    newsletter: bool = False


class DeliveryReceipt(BaseModel):
    provider: str
    message_id: str = ""
    recipients: List[str]
    attachment_name: str
    sent_at: str


# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------
def recipient_list(v: Union[str, List[str], None]) -> List[str]:
    if not v:
        return []
    if isinstance(v, str):
        # allow "a@x.com, b@x.com" or "a@x.com"
        return [s.strip() for s in v.split(",") if s.strip()]
    return [str(s).strip() for s in v if str(s).strip()]


def _valid_recipients(v: Union[str, List[str], None]) -> List[str]:
    return [validate_email(addr)[1] for addr in recipient_list(v)]


class GeneratePdfIn(_WireModel):
    report_data: Optional[ReportPayload] = Field(None, alias="reportData")
    lead_data: Optional[LeadFields] = Field(None, alias="leadData")
    to_email: Optional[Union[str, List[str]]] = None

    @field_validator("to_email")
    @classmethod
    def check_recipients(cls, v: Any) -> List[str]:
        return _valid_recipients(v)


class SendEmailIn(_WireModel):
    to_email: Optional[Union[str, List[str]]] = None
    pdf_base64: Optional[str] = Field(None, alias="pdfBase64")
    report_data: Optional[ReportPayload] = Field(None, alias="reportData")
    summary_data: Optional[SummaryFields] = Field(None, alias="summaryData")

    @field_validator("to_email")
    @classmethod
    def check_recipients(cls, v: Any) -> List[str]:
        return _valid_recipients(v)
