from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .i18n import LocalizedText


ProductStatus = Literal["active", "inactive", "draft"]
QuoteStatus = Literal["pending", "signed"]


class Feature(BaseModel):
    title: LocalizedText = ""
    description: LocalizedText = ""
    icon: Optional[str] = None


class PricedItem(BaseModel):
    id: str
    name: LocalizedText = ""
    price: float = 0.0


class PricingOption(PricedItem):
    pass


class InstallationKit(PricedItem):
    pass


class Extra(PricedItem):
    pass


class FinancingPlan(BaseModel):
    id: Optional[str] = None
    label: LocalizedText = ""
    months: int = Field(default=1, ge=1)
    commission: Optional[float] = None  # percentage, legacy plans
    coefficient: Optional[float] = None  # multiplier from lender tables
    requires_documents: bool = True


class Product(BaseModel):
    id: Optional[str] = None
    brand: str = ""
    model: str = ""
    type: str = ""
    reference: Optional[str] = None
    features: List[Feature] = Field(default_factory=list)
    pricing: List[PricingOption] = Field(default_factory=list)
    installation_kits: List[InstallationKit] = Field(default_factory=list)
    extras: List[Extra] = Field(default_factory=list)
    financing: List[FinancingPlan] = Field(default_factory=list)
    image_url: Optional[str] = None
    pdf_url: Optional[str] = None
    brand_logo_url: Optional[str] = None
    raw_context: Optional[str] = None
    status: ProductStatus = "active"
    is_deleted: bool = False
    created_at: Optional[str] = None


class Selection(BaseModel):
    """What the visitor picked in the configurator.

    ``financing_index`` is ``None`` for paying in full. Extras never hold a
    zero quantity: setting an extra to zero removes it.
    """

    model_config = ConfigDict(frozen=True)

    option_id: Optional[str] = None
    kit_id: Optional[str] = None
    extras: Dict[str, int] = Field(default_factory=dict)
    financing_index: Optional[int] = None

    @field_validator("extras")
    @classmethod
    def _drop_zero_quantities(cls, v: Dict[str, int]) -> Dict[str, int]:
        for extra_id, qty in v.items():
            if qty < 0:
                raise ValueError(f"negative quantity for extra {extra_id!r}")
        return {k: q for k, q in v.items() if q > 0}

    def with_extra_quantity(self, extra_id: str, qty: int) -> "Selection":
        extras = dict(self.extras)
        extras[extra_id] = max(0, int(qty))
        return type(self)(**{**self.model_dump(), "extras": extras})

    def with_extra_delta(self, extra_id: str, delta: int) -> "Selection":
        return self.with_extra_quantity(extra_id, self.extras.get(extra_id, 0) + delta)


class ExtraLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    extra: Extra
    quantity: int
    subtotal: float


class PriceBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    option: PricingOption
    kit: InstallationKit
    extras: List[ExtraLine] = Field(default_factory=list)
    extras_total: float = 0.0
    total: float = 0.0
    plan: Optional[FinancingPlan] = None
    financed_total: float = 0.0
    installment: Optional[float] = None


class ClientData(BaseModel):
    name: str = ""
    surname: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    work_order: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


class Quote(BaseModel):
    """Stored quote. Brand, model, price and texts are a snapshot taken when
    the quote was created and are never re-derived from the catalog."""

    id: Optional[str] = None
    created_at: Optional[str] = None
    product_id: Optional[str] = None
    brand: str
    model: str
    option: str = ""
    price: float
    financing: str
    extras: List[str] = Field(default_factory=list)
    client: ClientData
    language: str = "es"
    signature: Optional[str] = None
    document_url: Optional[str] = None
    identity_document_url: Optional[str] = None
    income_proof_url: Optional[str] = None
    notification_sent: bool = False
    status: QuoteStatus = "pending"
    is_deleted: bool = False

    @model_validator(mode="after")
    def _signed_has_document(self) -> "Quote":
        if self.status == "signed" and not self.document_url:
            raise ValueError("a signed quote needs a document_url")
        return self


class CompanyAddress(BaseModel):
    label: str = ""
    address: str = ""


class CompanyInfo(BaseModel):
    id: Optional[str] = None
    brand_name: str = "EcoQuote"
    logo_url: Optional[str] = None
    show_logo: bool = False
    address: str = ""
    phone: str = ""
    email: str = ""
    website: Optional[str] = None
    social: Dict[str, str] = Field(default_factory=dict)
    addresses: List[CompanyAddress] = Field(default_factory=list)


class ContactMessage(BaseModel):
    id: Optional[str] = None
    created_at: Optional[str] = None
    name: str
    email: str
    message: str


class SaveQuoteResult(BaseModel):
    id: str
    status: QuoteStatus
    document_url: str
    notification_sent: bool


class PendingQuoteResult(BaseModel):
    id: str
    status: QuoteStatus = "pending"
    signing_url: str
