"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, validator


class ProductCreateRequest(BaseModel):
    """Request body for registering a product."""
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Product page URL")
    selector: str = Field(..., description="CSS selector for the price element")

    @validator('name', 'url', 'selector')
    def validate_not_blank(cls, v):
        """Name, URL and selector are all required."""
        if not v or not v.strip():
            raise ValueError('Name, URL, and selector are required')
        return v.strip()


class SelectorTestRequest(BaseModel):
    """Request body for testing a selector without registering a product."""
    url: str = Field(..., description="Product page URL")
    selector: str = Field(..., description="CSS selector for the price element")


class ProductResponse(BaseModel):
    """Product response model for API."""
    id: int = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Product page URL")
    selector: str = Field(..., description="CSS selector for the price element")
    created_at: datetime = Field(..., description="Registration timestamp")


class ProductSummaryResponse(ProductResponse):
    """Product with its most recent price."""
    latest_price: Optional[float] = Field(None, description="Most recent recorded price")
    latest_check: Optional[datetime] = Field(None, description="When the most recent price was recorded")


class PriceSampleResponse(BaseModel):
    """One recorded price."""
    id: int = Field(..., description="Sample identifier")
    product_id: int = Field(..., description="Product identifier")
    price: float = Field(..., description="Recorded price")
    timestamp: datetime = Field(..., description="Capture time")


class PriceHistoryResponse(BaseModel):
    """Price history of a product, most recent first."""
    product_id: int = Field(..., description="Product identifier")
    prices: List[PriceSampleResponse] = Field(..., description="Samples, most recent first")
    total: int = Field(..., description="Number of samples")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Error details")
    status_code: int = Field(..., description="HTTP status code")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="API health status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
    scheduler_running: bool = Field(False, description="Whether the price check scheduler is running")
