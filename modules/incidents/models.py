from pydantic import BaseModel, Field
from typing import Literal, Optional

Severity = Literal["low", "medium", "high", "critical"]

class IncidentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    severity: Severity = "medium"
