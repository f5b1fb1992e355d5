"""
Models for the price check scheduler.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, validator
from apscheduler.triggers.cron import CronTrigger

from extractor.models import FailureKind


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler system."""
    cron_expression: str = Field(default="0 0 * * *", description="Default crontab cadence for price checks")
    timezone: str = Field(default="UTC", description="Timezone for scheduling")
    rate_limit_per_second: float = Field(default=2.0, gt=0, description="Max on-demand checks started per second")

    @validator('cron_expression')
    def validate_cron_expression(cls, v):
        """Ensure the cadence is a valid crontab expression."""
        try:
            CronTrigger.from_crontab(v)
        except ValueError as e:
            raise ValueError(f'Invalid cron expression {v!r}: {e}')
        return v


class CheckResult(BaseModel):
    """Outcome of one extraction cycle for one product."""
    product_id: int = Field(..., description="Product identifier")
    name: Optional[str] = Field(None, description="Product name, when the product exists")
    success: bool = Field(..., description="Whether a price was recorded")
    price: Optional[float] = Field(None, description="Recorded price on success")
    error: Optional[str] = Field(None, description="Error message on failure")
    failure: Optional[FailureKind] = Field(None, description="Failure kind when extraction failed")
    checked_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }
