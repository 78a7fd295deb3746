import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .exceptions import (
    BookNotFoundError,
    CategoryNotFoundError,
    DatabaseError,
    DuplicateCategoryError,
)
from .models import (
    BookModel,
    BorrowRecordWithBook,
    CategoryModel,
    DashboardStats,
    parse_object_id,
)
from .schemas import BookCreate, BookUpdate, CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


# Books


async def create_book(db, book: BookCreate) -> BookModel:
    now = _now()
    document = {
        **book.model_dump(mode="json", by_alias=True),
        "averageRating": 0,
        "reviewCount": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.books.insert_one(document)
    except PyMongoError as e:
        raise DatabaseError("create book", str(e))
    document["_id"] = result.inserted_id
    logger.info(f"Book created: {document['title']} ({result.inserted_id})")
    return BookModel(**document)


async def list_books(
    db,
    category: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
) -> List[BookModel]:
    query = {}
    if category:
        query["category"] = category
    if available:
        query["quantity"] = {"$gt": 0}
    if search:
        pattern = _contains(search)
        query["$or"] = [
            {"title": pattern},
            {"description": pattern},
            {"category": pattern},
        ]
    try:
        books = await db.books.find(query).to_list(length=None)
    except PyMongoError as e:
        raise DatabaseError("list books", str(e))
    return [BookModel(**book) for book in books]


async def get_book(db, book_id: str) -> BookModel:
    book_oid = parse_object_id(book_id, BookNotFoundError)
    try:
        book = await db.books.find_one({"_id": book_oid})
    except PyMongoError as e:
        raise DatabaseError("get book", str(e))
    if book is None:
        raise BookNotFoundError(book_id)
    return BookModel(**book)


async def update_book(db, book_id: str, book_update: BookUpdate) -> BookModel:
    update_data = book_update.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if not update_data:
        return await get_book(db, book_id)

    book_oid = parse_object_id(book_id, BookNotFoundError)
    update_data["updatedAt"] = _now()
    try:
        book = await db.books.find_one_and_update(
            {"_id": book_oid},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise DatabaseError("update book", str(e))
    if book is None:
        raise BookNotFoundError(book_id)
    return BookModel(**book)


async def delete_book(db, book_id: str):
    """Delete a book together with its reviews and borrow records."""
    book_oid = parse_object_id(book_id, BookNotFoundError)
    try:
        result = await db.books.delete_one({"_id": book_oid})
        if result.deleted_count == 0:
            raise BookNotFoundError(book_id)
        reviews = await db.reviews.delete_many({"bookId": book_id})
        borrows = await db.borrows.delete_many({"bookId": book_id})
    except PyMongoError as e:
        raise DatabaseError("delete book", str(e))
    logger.info(
        f"Book {book_id} deleted with {reviews.deleted_count} reviews "
        f"and {borrows.deleted_count} borrow records"
    )


async def get_recent_books(db, limit: int = 5) -> List[BookModel]:
    try:
        books = await db.books.find(
            {}, sort=[("createdAt", DESCENDING)], limit=limit
        ).to_list(length=None)
    except PyMongoError as e:
        raise DatabaseError("recent books", str(e))
    return [BookModel(**book) for book in books]


# Loan ledger


async def get_borrowed_books(db, user_email: str) -> List[BorrowRecordWithBook]:
    try:
        records = await db.borrows.find(
            {"userEmail": user_email}, sort=[("borrowedDate", DESCENDING)]
        ).to_list(length=None)
        book_ids = {
            ObjectId(r["bookId"]) for r in records if ObjectId.is_valid(r["bookId"])
        }
        books = await db.books.find({"_id": {"$in": list(book_ids)}}).to_list(
            length=None
        )
    except PyMongoError as e:
        raise DatabaseError("list borrowed books", str(e))

    books_by_id = {str(book["_id"]): book for book in books}
    return [
        BorrowRecordWithBook(**record, book=books_by_id.get(record["bookId"]))
        for record in records
    ]


# Categories


async def _ensure_unique_category(db, name: str, exclude_id: Optional[ObjectId] = None):
    query = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if await db.categories.find_one(query):
        raise DuplicateCategoryError(name)


async def create_category(db, category: CategoryCreate) -> CategoryModel:
    now = _now()
    document = {
        **category.model_dump(mode="json", by_alias=True),
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        await _ensure_unique_category(db, category.name)
        result = await db.categories.insert_one(document)
    except DuplicateKeyError:
        raise DuplicateCategoryError(category.name)
    except PyMongoError as e:
        raise DatabaseError("create category", str(e))
    document["_id"] = result.inserted_id
    logger.info(f"Category created: {category.name}")
    return CategoryModel(**document)


async def list_categories(db) -> List[CategoryModel]:
    try:
        categories = await db.categories.find(
            {}, sort=[("name", ASCENDING)]
        ).to_list(length=None)
    except PyMongoError as e:
        raise DatabaseError("list categories", str(e))
    return [CategoryModel(**category) for category in categories]


async def get_category(db, category_id: str) -> CategoryModel:
    category_oid = parse_object_id(category_id, CategoryNotFoundError)
    try:
        category = await db.categories.find_one({"_id": category_oid})
    except PyMongoError as e:
        raise DatabaseError("get category", str(e))
    if category is None:
        raise CategoryNotFoundError(category_id)
    return CategoryModel(**category)


async def update_category(
    db, category_id: str, category_update: CategoryUpdate
) -> CategoryModel:
    category_oid = parse_object_id(category_id, CategoryNotFoundError)
    update_data = category_update.model_dump(
        mode="json", by_alias=True, exclude_unset=True
    )
    if not update_data:
        return await get_category(db, category_id)

    update_data["updatedAt"] = _now()
    try:
        if category_update.name:
            await _ensure_unique_category(db, category_update.name, category_oid)
        category = await db.categories.find_one_and_update(
            {"_id": category_oid},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise DuplicateCategoryError(category_update.name)
    except PyMongoError as e:
        raise DatabaseError("update category", str(e))
    if category is None:
        raise CategoryNotFoundError(category_id)
    return CategoryModel(**category)


async def delete_category(db, category_id: str):
    category_oid = parse_object_id(category_id, CategoryNotFoundError)
    try:
        result = await db.categories.delete_one({"_id": category_oid})
    except PyMongoError as e:
        raise DatabaseError("delete category", str(e))
    if result.deleted_count == 0:
        raise CategoryNotFoundError(category_id)


# Dashboard


async def get_dashboard_stats(db) -> DashboardStats:
    try:
        total_books = await db.books.count_documents({})
        borrowers = await db.borrows.distinct("userEmail")
        active_loans = await db.borrows.count_documents({"returnDate": None})
        categories = await db.books.distinct("category")
        total_banners = await db.banners.count_documents({})
    except PyMongoError as e:
        raise DatabaseError("dashboard stats", str(e))
    return DashboardStats(
        total_books=total_books,
        total_borrowers=len(borrowers),
        active_loans=active_loans,
        total_categories=len(categories),
        total_banners=total_banners,
    )
