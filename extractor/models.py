"""
Pydantic models for tracked products, price samples and extraction results.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Typed reasons an extraction attempt can fail."""
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    UNREACHABLE = "unreachable"
    SELECTOR_TIMEOUT = "selector_timeout"
    PARSE_FAILURE = "parse_failure"


class ExtractionStrategy(str, Enum):
    """Which strategy produced an outcome."""
    FETCH = "fetch"
    RENDER = "render"


class Product(BaseModel):
    """A tracked page and the selector of its price element."""
    id: int = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Product page URL (unique)")
    selector: str = Field(..., description="CSS selector for the price element")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="When the product was registered")

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }
        json_schema_extra = {
            "example": {
                "id": 1,
                "name": "Widget",
                "url": "https://shop.example.com/widget",
                "selector": "#price",
                "created_at": "2024-01-15T10:30:00Z"
            }
        }


class PriceSample(BaseModel):
    """One recorded price for a product. Append-only."""
    id: int = Field(..., description="Unique sample identifier")
    product_id: int = Field(..., description="Product the sample belongs to")
    price: float = Field(..., description="Extracted price")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Capture time")

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }


class ExtractionOutcome(BaseModel):
    """
    Result of a single extraction attempt.

    Either ``price`` is set, or ``failure`` names what went wrong and
    ``message`` describes it.
    """
    price: Optional[float] = Field(None, description="Extracted price on success")
    failure: Optional[FailureKind] = Field(None, description="Failure kind when extraction failed")
    message: Optional[str] = Field(None, description="Human-readable cause of a failure")
    strategy: ExtractionStrategy = Field(ExtractionStrategy.FETCH, description="Strategy that produced the outcome")
    status_code: Optional[int] = Field(None, description="HTTP status code, when one was received")
    raw_text: Optional[str] = Field(None, description="Text taken from the page before normalization")

    @property
    def success(self) -> bool:
        return self.failure is None and self.price is not None

    @property
    def should_escalate(self) -> bool:
        """Only an access-denied fetch is worth a browser rendering pass."""
        return (
            self.failure == FailureKind.ACCESS_DENIED
            and self.strategy == ExtractionStrategy.FETCH
        )

    @classmethod
    def succeeded(cls, price: float, strategy: ExtractionStrategy, raw_text: Optional[str] = None) -> "ExtractionOutcome":
        return cls(price=price, strategy=strategy, raw_text=raw_text)

    @classmethod
    def failed(
        cls,
        failure: FailureKind,
        message: str,
        strategy: ExtractionStrategy,
        status_code: Optional[int] = None,
        raw_text: Optional[str] = None
    ) -> "ExtractionOutcome":
        return cls(
            failure=failure,
            message=message,
            strategy=strategy,
            status_code=status_code,
            raw_text=raw_text
        )


class LocatorTestResult(BaseModel):
    """Result of validating a selector against a page."""
    success: bool = Field(..., description="Whether a price could be extracted")
    price: Optional[float] = Field(None, description="Extracted price on success")
    message: str = Field(..., description="Description of the result")
    failure: Optional[FailureKind] = Field(None, description="Failure kind when the test failed")
