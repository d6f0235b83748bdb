"""Fill record model shared by the REST client, the cursor and the writers."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Fill(BaseModel):
    """
    One executed trade leg as returned by the exchange.

    Attribute names are snake_case; the exchange (and the CSV output) use the
    camelCase aliases. Only ``id`` and ``time`` are interpreted by the
    backfill, everything else is passed through untouched.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    # Declaration order is the CSV column order.
    fee: float
    fee_currency: Optional[str] = None
    fee_rate: Optional[float] = None
    future: Optional[str] = None
    id: int = Field(ge=0)
    liquidity: Optional[str] = None
    market: Optional[str] = None
    base_currency: Optional[str] = None
    quote_currency: Optional[str] = None
    order_id: Optional[int] = None
    trade_id: Optional[int] = None
    price: float
    side: Optional[str] = None
    size: float
    time: datetime
    type: Optional[str] = None

    @field_validator("time")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_csv_row(self) -> Dict[str, Any]:
        """Return the record keyed by CSV column name."""
        return self.model_dump(mode="json", by_alias=True)


class FillsResponse(BaseModel):
    """Envelope of the ``/fills`` endpoint."""

    success: Optional[bool] = None
    result: List[Fill]


FILL_CSV_FIELDS: List[str] = [to_camel(name) for name in Fill.model_fields]
