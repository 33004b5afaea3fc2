"""
Performance Domain Models

Immutable Pydantic models for agreements, sales lines and the computed
performance result. Attributes are snake_case; JSON payloads (cache entries,
API responses, remote compute responses) use camelCase aliases.
"""

from datetime import datetime, timezone
from typing import Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNKNOWN_PRODUCT = "Unknown Product"


class DomainModel(BaseModel):
    """Base for all frozen, camelCase-serialized domain models"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> dict:
        """JSON-ready dict using the wire aliases"""
        return self.model_dump(mode="json", by_alias=True)


class Agreement(DomainModel):
    """One customer's contractual target record"""

    customer_code: str = Field(min_length=1)
    customer_name: str
    agreement_start_date: str = ""
    agreement_end_date: str = ""
    target_volume: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("targetVolume", "agreementTargetVolume", "target_volume"),
        serialization_alias="targetVolume",
    )


class SaleLine(DomainModel):
    """One sales extract row attributing a volume to a customer/product"""

    customer_code: str = Field(min_length=1)
    product_name: str = UNKNOWN_PRODUCT
    volume: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("volume", "productVolume"),
        serialization_alias="volume",
    )


class ProductBreakdown(DomainModel):
    """Total volume of one product for one customer"""

    product_name: str
    total_volume: float


class Performance(Agreement):
    """Achievement of one customer against its agreement"""

    achieved_volume: float = 0.0
    progress_percentage: float = 0.0
    products: Tuple[ProductBreakdown, ...] = ()


class Summary(DomainModel):
    """Portfolio-wide rollup across all performances"""

    total_target: float = 0.0
    total_achieved: float = 0.0
    overall_progress: float = 0.0
    customer_count: int = Field(
        default=0,
        validation_alias=AliasChoices("customerCount", "totalCustomers", "customer_count"),
        serialization_alias="customerCount",
    )


class CachedResult(DomainModel):
    """
    Immutable snapshot produced by one aggregation run.

    Cache stores hold at most one current instance each; a newer result
    replaces it wholesale.
    """

    performances: Tuple[Performance, ...] = ()
    summary: Summary = Field(default_factory=Summary)
    computed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("computedAt", "timestamp", "computed_at"),
        serialization_alias="computedAt",
    )

    @property
    def is_empty(self) -> bool:
        """True when no customer performance is present"""
        return len(self.performances) == 0

    def find(self, customer_code: str):
        """Performance for ``customer_code`` or None"""
        for performance in self.performances:
            if performance.customer_code == customer_code:
                return performance
        return None
