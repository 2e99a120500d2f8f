# api/v1/schemas/catalog.py
from datetime import datetime
from pydantic import BaseModel
from typing import Any, Dict, Optional


class CatalogSummaryOut(BaseModel):
    available: bool
    items: int = 0
    enriched: int = 0
    fetched_at: Optional[datetime] = None
    age_seconds: Optional[float] = None
    fresh: bool = False
    refreshing: bool = False
    last_refresh: Dict[str, Any] = {}
