from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime

class UsageStatus(BaseModel):
    entitled: bool
    quota: Optional[int] = Field(None, description="Messages per window; null when entitled (unlimited).")
    used: int = 0
    remaining: Optional[int] = None
    window_resets_at: Optional[datetime] = None

class EntitlementEvent(BaseModel):
    """
    Out-of-band entitlement change. ``current_period_end`` null revokes the
    entitlement; a timestamp grants it until then (plus the grace period).
    """
    caller_id: str = Field(..., min_length=1)
    current_period_end: Optional[datetime] = None
