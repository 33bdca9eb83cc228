from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CatalogServiceCreateRequest(BaseModel):
    name: str
    description: str = ""
    price: float = Field(gt=0)
    max_people: int = Field(default=4, ge=1)
    duration: int = Field(default=60, ge=1)  # minutes
    is_active: bool = True
    requires_documents: List[str] = Field(default_factory=list)


class CatalogService(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float
    max_people: int
    duration: int
    is_active: bool
    requires_documents: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
