from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, Field
from pydantic.alias_generators import to_camel

from .exceptions import ResourceNotFoundError

UNTITLED = "Untitled"
UNKNOWN_AUTHOR = "Unknown Author"
UNCATEGORIZED = "Uncategorized"

# Mongo ObjectIds are exposed as plain strings.
PyObjectId = Annotated[str, BeforeValidator(str)]


def parse_object_id(value: str, not_found: type[ResourceNotFoundError]) -> ObjectId:
    """Convert a path/body id to an ObjectId.

    An id that is not a valid ObjectId can never resolve to a document, so it
    is reported the same way as a missing one.
    """
    if not ObjectId.is_valid(value):
        raise not_found(value)
    return ObjectId(value)


class DocumentModel(BaseModel):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class BookModel(DocumentModel):
    title: str = UNTITLED
    author: str = UNKNOWN_AUTHOR
    description: Optional[str] = None
    category: str = UNCATEGORIZED
    quantity: int = 0
    available: bool = True
    image: Optional[str] = None
    rating: int = 5
    average_rating: float = 0
    review_count: int = 0


class BorrowRecordModel(DocumentModel):
    user_email: str
    book_id: str
    borrowed_date: datetime
    return_date: Optional[datetime] = None


class BorrowRecordWithBook(BorrowRecordModel):
    book: Optional[BookModel] = None


class ReviewCategory(str, Enum):
    REVIEW = "Review"
    BLOG = "Blog"
    RECOMMENDATION = "Recommendation"


class ReviewAuthor(BaseModel):
    name: str
    email: str
    photo_url: str = Field(default="", alias="photoURL")

    class Config:
        populate_by_name = True


class ReviewModel(DocumentModel):
    title: str
    content: str
    author: ReviewAuthor
    rating: int = 5
    category: ReviewCategory = ReviewCategory.REVIEW
    book_id: Optional[str] = None


class BannerModel(DocumentModel):
    title: str
    subtitle: Optional[str] = None
    image_url: str
    active: bool = False


class CategoryModel(DocumentModel):
    name: str
    description: Optional[str] = None


class DashboardStats(BaseModel):
    total_books: int
    total_borrowers: int
    active_loans: int
    total_categories: int
    total_banners: int

    class Config:
        alias_generator = to_camel
        populate_by_name = True
