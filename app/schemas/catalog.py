from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.validation import is_valid_uuid


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    icon: str | None = None
    min_price: int
    max_price: int


class JobAccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category_id: str | None = None
    title: str
    description: str
    company: str | None = None
    price: int
    monthly_earnings: str | None = None
    skills_required: list[str] | None = None
    image_url: str | None = None
    is_available: bool
    total_stock: int | None = None
    sold_count: int = 0
    remaining_stock: int | None = None
    stock_status: str
    created_at: datetime


class JobAccountIn(BaseModel):
    """Create/update payload; admin only."""
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=2000)
    company: str | None = Field(default=None, max_length=100)
    category_id: str | None = None
    price: int = Field(ge=2000, le=100000)
    monthly_earnings: str | None = Field(default=None, max_length=50)
    skills_required: list[str] = Field(default_factory=list, max_length=10)
    image_url: str | None = Field(default=None, max_length=500)
    is_available: bool = True

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("category_id")
    @classmethod
    def check_category_id(cls, v: str | None) -> str | None:
        if v is not None and not is_valid_uuid(v):
            raise ValueError("Invalid category reference")
        return v

    @field_validator("skills_required")
    @classmethod
    def check_skills(cls, v: list[str]) -> list[str]:
        skills = [s.strip() for s in v if s and s.strip()]
        if any(len(s) > 50 for s in skills):
            raise ValueError("Each skill must be at most 50 characters")
        return skills


class StockUpdate(BaseModel):
    total_stock: int = Field(ge=0, le=1_000_000)
