from typing import Annotated, Optional

from pydantic import BaseModel, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from .models import UNCATEGORIZED, UNKNOWN_AUTHOR, UNTITLED, ReviewCategory

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class RequestSchema(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class BookCreate(RequestSchema):
    title: str
    author: str
    description: Optional[str] = None
    category: str = UNCATEGORIZED
    quantity: int = Field(0, ge=0)
    available: bool = True
    image: Optional[str] = None
    rating: int = Field(5, ge=1, le=5)

    @field_validator("title")
    @classmethod
    def default_title(cls, v: str) -> str:
        return v.strip() or UNTITLED

    @field_validator("author")
    @classmethod
    def default_author(cls, v: str) -> str:
        return v.strip() or UNKNOWN_AUTHOR

    @field_validator("category")
    @classmethod
    def default_category(cls, v: str) -> str:
        return v.strip() or UNCATEGORIZED


class BookUpdate(RequestSchema):
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    available: Optional[bool] = None
    image: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)

    # Blank values fall back to the same sentinels as on create.
    @field_validator("title")
    @classmethod
    def default_title(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else v.strip() or UNTITLED

    @field_validator("author")
    @classmethod
    def default_author(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else v.strip() or UNKNOWN_AUTHOR

    @field_validator("category")
    @classmethod
    def default_category(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else v.strip() or UNCATEGORIZED


class BorrowRequest(RequestSchema):
    user_email: NonEmptyStr
    book_id: NonEmptyStr


class QuantityRestoreRequest(RequestSchema):
    book_id: NonEmptyStr


class ReviewAuthorIn(BaseModel):
    name: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")

    class Config:
        populate_by_name = True


class ReviewCreate(RequestSchema):
    title: NonEmptyStr
    content: NonEmptyStr
    rating: int = Field(5, ge=1, le=5)
    category: ReviewCategory = ReviewCategory.REVIEW
    book_id: Optional[str] = None
    author: Optional[ReviewAuthorIn] = None


class ReviewUpdate(RequestSchema):
    title: Optional[NonEmptyStr] = None
    content: Optional[NonEmptyStr] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    category: Optional[ReviewCategory] = None
    book_id: Optional[str] = None


class BannerCreate(RequestSchema):
    title: NonEmptyStr
    subtitle: Optional[str] = None
    image_url: NonEmptyStr
    active: bool = False


class BannerUpdate(RequestSchema):
    title: Optional[NonEmptyStr] = None
    subtitle: Optional[str] = None
    image_url: Optional[NonEmptyStr] = None


class CategoryCreate(RequestSchema):
    name: NonEmptyStr
    description: Optional[str] = None


class CategoryUpdate(RequestSchema):
    name: Optional[NonEmptyStr] = None
    description: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
