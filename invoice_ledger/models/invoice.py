# invoice_ledger/models/invoice.py
from datetime import date
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Annotated, List, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_COMPANY_PROFILE_ID = "default_company_profile"
DEFAULT_TERMS = "Payment due within 30 days."


def _to_decimal(value):
    # floats come from persisted JSON; go through str() to keep 0.1 as 0.1
    if isinstance(value, float):
        return Decimal(str(value))
    return value


Money = Annotated[
    Decimal,
    BeforeValidator(_to_decimal),
    PlainSerializer(float, return_type=float, when_used="json"),
]
NonNegativeMoney = Annotated[Money, Field(ge=0)]


class TaxRate(IntEnum):
    RATE_0 = 0
    RATE_5 = 5
    RATE_12 = 12
    RATE_18 = 18
    RATE_28 = 28


class InvoiceStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    OVERDUE = "Overdue"
    DRAFT = "Draft"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class LedgerModel(BaseModel):
    """Base for every persisted shape: snake_case in Python, camelCase on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CompanyProfileInput(LedgerModel):
    company_name: str
    address: str
    contact_number: str
    email: str
    website: Optional[str] = None
    logo: Optional[str] = None  # data URL
    tax_id: str
    upi_id: str
    terms_and_conditions: Optional[str] = None


class CompanyProfile(CompanyProfileInput):
    id: str = DEFAULT_COMPANY_PROFILE_ID


class ClientInput(LedgerModel):
    name: str
    billing_address: str
    shipping_address: Optional[str] = None
    email: str
    phone_number: str
    tax_id: Optional[str] = None


class Client(ClientInput):
    id: str


class StockItemInput(LedgerModel):
    name: str
    description: Optional[str] = None
    unit_price: Money = Field(ge=0)
    tax_rate: TaxRate = TaxRate.RATE_0


class StockItem(StockItemInput):
    id: str


class InvoiceLineDraft(LedgerModel):
    """A line as the form supplies it; omitted fields fall back to the catalog."""

    stock_item_id: Optional[str] = None
    quantity: Money = Field(ge=0)
    item_name: Optional[str] = None
    description: Optional[str] = None
    unit_price: Optional[NonNegativeMoney] = None
    tax_rate: Optional[TaxRate] = None


class InvoiceLineItem(LedgerModel):
    stock_item_id: str = ""
    item_name: str
    description: Optional[str] = None
    quantity: Money = Field(ge=0)
    unit_price: Money = Field(ge=0)
    tax_rate: TaxRate = TaxRate.RATE_0
    # derived, always overwritten by the totals engine
    line_total: Money = Decimal("0")
    tax_amount: Money = Decimal("0")
    item_total_with_tax: Money = Decimal("0")


class InvoiceDraft(LedgerModel):
    invoice_number: Optional[str] = None
    bill_date: date
    due_date: date
    client_id: str
    items: List[InvoiceLineDraft] = []
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Money = Field(default=Decimal("0"), ge=0)
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT


class Invoice(LedgerModel):
    id: str
    invoice_number: str
    bill_date: date
    due_date: date
    client_id: str
    client_details: Optional[Client] = None
    company_profile_snapshot: Optional[CompanyProfile] = None
    items: Tuple[InvoiceLineItem, ...] = ()
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Money = Field(default=Decimal("0"), ge=0)
    subtotal: Money = Decimal("0")
    discount_amount_calculated: Money = Decimal("0")
    amount_after_discount: Money = Decimal("0")
    total_tax: Money = Decimal("0")
    grand_total: Money = Decimal("0")
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    finalized_on: Optional[date] = None

    @model_validator(mode="before")
    @classmethod
    def _infer_finalization(cls, data):
        # records written before finalizedOn existed
        if not isinstance(data, dict):
            return data
        finalized = data.get("finalizedOn", data.get("finalized_on"))
        status = data.get("status", InvoiceStatus.DRAFT)
        if finalized is None and InvoiceStatus(status) != InvoiceStatus.DRAFT:
            data = {**data, "finalizedOn": data.get("billDate", data.get("bill_date"))}
        return data

    @property
    def is_finalized(self) -> bool:
        return self.finalized_on is not None
