from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

# ===== CATEGORY PYDANTIC MODELS =====

class CategoryTypeEnum(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    category_type: CategoryTypeEnum = Field(default=CategoryTypeEnum.EXPENSE)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color code")
    icon: Optional[str] = Field(None, max_length=50)

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, description="Category name")
    category_type: Optional[CategoryTypeEnum] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = Field(None, max_length=50)

class CategoryResponse(CategoryBase):
    id: int

    class Config:
        from_attributes = True
