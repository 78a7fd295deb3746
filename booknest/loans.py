"""Borrow / return workflow.

Book quantity is only ever changed with single-document updates: a borrow
decrements it conditionally on ``quantity > 0`` and a return increments it.
The duplicate-loan check and the ledger insert for one (user, book) pair run
under a per-pair lock.
"""
import logging
from datetime import datetime, timezone

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from .exceptions import (
    AlreadyBorrowedError,
    BookNotAvailableError,
    BookNotFoundError,
    BorrowRecordNotFoundError,
    DatabaseError,
)
from .locks import KeyedLock
from .models import BookModel, BorrowRecordModel, parse_object_id

logger = logging.getLogger(__name__)

borrow_locks = KeyedLock()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def borrow_book(db, user_email: str, book_id: str) -> BorrowRecordModel:
    book_oid = parse_object_id(book_id, BookNotFoundError)

    async with borrow_locks.hold(f"{user_email}:{book_id}"):
        try:
            outstanding = await db.borrows.find_one(
                {"userEmail": user_email, "bookId": book_id, "returnDate": None}
            )
            if outstanding:
                raise AlreadyBorrowedError(user_email, book_id)

            book = await db.books.find_one_and_update(
                {"_id": book_oid, "quantity": {"$gt": 0}},
                {"$inc": {"quantity": -1}, "$set": {"updatedAt": _now()}},
                return_document=ReturnDocument.AFTER,
            )
            if book is None:
                if await db.books.count_documents({"_id": book_oid}) == 0:
                    raise BookNotFoundError(book_id)
                raise BookNotAvailableError(book_id)
        except PyMongoError as e:
            raise DatabaseError("borrow", str(e))

        now = _now()
        record = {
            "userEmail": user_email,
            "bookId": book_id,
            "borrowedDate": now,
            "returnDate": None,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            result = await db.borrows.insert_one(record)
        except PyMongoError as e:
            logger.error(f"Ledger insert failed, restoring stock of book {book_id}")
            await _restock(db, book_oid)
            raise DatabaseError("borrow", str(e))

    record["_id"] = result.inserted_id
    logger.info(
        f"{user_email} borrowed book {book_id}, {book['quantity']} copies left"
    )
    return BorrowRecordModel(**record)


async def return_book(db, record_id: str) -> str:
    record_oid = parse_object_id(record_id, BorrowRecordNotFoundError)
    try:
        # Stamping returnDate claims the record, so a concurrent or repeated
        # return of the same loan finds nothing outstanding.
        record = await db.borrows.find_one_and_update(
            {"_id": record_oid, "returnDate": None},
            {"$set": {"returnDate": _now(), "updatedAt": _now()}},
            return_document=ReturnDocument.AFTER,
        )
        if record is None:
            raise BorrowRecordNotFoundError(record_id)

        book_id = record["bookId"]
        if ObjectId.is_valid(book_id):
            await _restock(db, ObjectId(book_id))
        await db.borrows.delete_one({"_id": record_oid})
    except PyMongoError as e:
        raise DatabaseError("return", str(e))

    logger.info(f"{record['userEmail']} returned book {book_id}")
    return book_id


async def restore_quantity(db, book_id: str) -> BookModel:
    """Add one copy back to a book, independently of any borrow record."""
    book_oid = parse_object_id(book_id, BookNotFoundError)
    try:
        book = await _restock(db, book_oid)
    except PyMongoError as e:
        raise DatabaseError("quantity restore", str(e))
    if book is None:
        raise BookNotFoundError(book_id)
    logger.info(f"Restored one copy of book {book_id}, quantity now {book['quantity']}")
    return BookModel(**book)


async def _restock(db, book_oid):
    return await db.books.find_one_and_update(
        {"_id": book_oid},
        {"$inc": {"quantity": 1}, "$set": {"updatedAt": _now()}},
        return_document=ReturnDocument.AFTER,
    )
