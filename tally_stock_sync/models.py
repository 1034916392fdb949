from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class ExportRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_type: str = "Export"
    report_name: str
    company_name: str
    static_variables: dict[str, str] = Field(default_factory=dict)


class GodownAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    godown_name: str
    quantity: Decimal = Decimal("0")


class StockItemRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    hsn_code: str | None = None
    gst_percentage: Decimal | None = None
    mrp: Decimal | None = None
    exclusive_rate: Decimal | None = None
    rate_after_gst: Decimal | None = None
    closing_value: Decimal | None = None
    total_quantity: Decimal = Decimal("0")
    company_name: str = ""
    godown_allocations: tuple[GodownAllocation, ...] = ()

    @property
    def has_pricing(self) -> bool:
        return self.mrp is not None or self.exclusive_rate is not None

    @property
    def allocated_quantity(self) -> Decimal:
        return sum((g.quantity for g in self.godown_allocations), Decimal("0"))

    def as_payload(self) -> dict:
        """Render the record in the shape consumed by the billing UI."""
        def num(v: Decimal | None):
            return float(v) if v is not None else None

        return {
            "itemName": self.name,
            "HSN": self.hsn_code,
            "GST": num(self.gst_percentage),
            "MRP": num(self.mrp),
            "rate": num(self.exclusive_rate),
            "company": self.company_name,
            "rateAfterGST": num(self.rate_after_gst),
            "totalQuantity": float(self.total_quantity),
            "godown": [
                {"name": g.godown_name, "quantity": float(g.quantity)}
                for g in self.godown_allocations
            ],
        }


class ReconciliationWarning(BaseModel):
    """A non-fatal irregularity found while rebuilding items from a flat report."""
    model_config = ConfigDict(frozen=True)

    code: str                    # missing_header | exhausted_info | unused_info | unused_godowns | unknown_godown
    message: str
    item_name: str | None = None
    position: int | None = None  # index into the info block list


class ReconciliationResult(BaseModel):
    records: list[StockItemRecord]
    warnings: list[ReconciliationWarning] = Field(default_factory=list)


class PricingComputation(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_amount: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal | None = None
    gst_amount: Decimal
    final_price: Decimal
    round_off: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.final_price


class SaleLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_name: str
    quantity: Decimal
    unit_price: Decimal          # GST-exclusive
    mrp: Decimal | None = None
    hsn_code: str | None = None
    gst_percentage: Decimal = Decimal("0")
    godown_name: str | None = None
    pricing: PricingComputation

    @property
    def is_gst(self) -> bool:
        return self.gst_percentage > 0

    @property
    def total(self) -> Decimal:
        return self.pricing.final_price


class BillTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_quantity: Decimal
    total_exclusive: Decimal
    total_discount: Decimal
    total_gst: Decimal
    grand_total: Decimal
    rounded_total: Decimal
    round_off: Decimal


class SyncResult(BaseModel):
    company_name: str
    records: list[StockItemRecord]
    warnings: list[ReconciliationWarning] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=datetime.now)

    def as_payload(self) -> list[dict]:
        return [r.as_payload() for r in self.records]
