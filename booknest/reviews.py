import logging
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .auth import CurrentUser
from .exceptions import (
    BookNotFoundError,
    DatabaseError,
    ForbiddenError,
    ReviewNotFoundError,
)
from .models import ReviewModel, parse_object_id
from .ratings import recompute_book_rating
from .schemas import ReviewCreate, ReviewUpdate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _author_email(user: CurrentUser) -> str:
    if not user.email:
        raise ForbiddenError("A verified email is required to write reviews")
    return user.email


async def _get_owned_review(db, review_id: str, user: CurrentUser) -> dict:
    review_oid = parse_object_id(review_id, ReviewNotFoundError)
    try:
        review = await db.reviews.find_one({"_id": review_oid})
    except PyMongoError as e:
        raise DatabaseError("get review", str(e))
    if review is None:
        raise ReviewNotFoundError(review_id)
    if review["author"]["email"] != _author_email(user):
        raise ForbiddenError("Only the author can modify this review")
    return review


async def _ensure_book_exists(db, book_id: str, operation: str):
    book_oid = parse_object_id(book_id, BookNotFoundError)
    try:
        if await db.books.count_documents({"_id": book_oid}) == 0:
            raise BookNotFoundError(book_id)
    except PyMongoError as e:
        raise DatabaseError(operation, str(e))


async def create_review(db, review: ReviewCreate, user: CurrentUser) -> ReviewModel:
    email = _author_email(user)
    if review.book_id:
        await _ensure_book_exists(db, review.book_id, "create review")

    author_in = review.author
    now = _now()
    document = {
        **review.model_dump(mode="json", by_alias=True, exclude={"author"}),
        "author": {
            "name": (author_in and author_in.name) or user.name or email,
            "email": email,
            "photoURL": (author_in and author_in.photo_url) or user.picture or "",
        },
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.reviews.insert_one(document)
    except PyMongoError as e:
        raise DatabaseError("create review", str(e))
    document["_id"] = result.inserted_id
    logger.info(f"Review {result.inserted_id} created by {email}")

    await recompute_book_rating(db, review.book_id)
    return ReviewModel(**document)


async def list_reviews(
    db, book_id: Optional[str] = None, category: Optional[str] = None
) -> List[ReviewModel]:
    query = {}
    if book_id:
        query["bookId"] = book_id
    if category:
        query["category"] = category
    try:
        reviews = await db.reviews.find(
            query, sort=[("createdAt", DESCENDING)]
        ).to_list(length=None)
    except PyMongoError as e:
        raise DatabaseError("list reviews", str(e))
    return [ReviewModel(**review) for review in reviews]


async def get_review(db, review_id: str) -> ReviewModel:
    review_oid = parse_object_id(review_id, ReviewNotFoundError)
    try:
        review = await db.reviews.find_one({"_id": review_oid})
    except PyMongoError as e:
        raise DatabaseError("get review", str(e))
    if review is None:
        raise ReviewNotFoundError(review_id)
    return ReviewModel(**review)


async def update_review(
    db, review_id: str, review_update: ReviewUpdate, user: CurrentUser
) -> ReviewModel:
    existing = await _get_owned_review(db, review_id, user)
    update_data = review_update.model_dump(
        mode="json", by_alias=True, exclude_unset=True
    )
    if not update_data:
        return ReviewModel(**existing)
    if update_data.get("bookId"):
        await _ensure_book_exists(db, update_data["bookId"], "update review")

    update_data["updatedAt"] = _now()
    try:
        review = await db.reviews.find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise DatabaseError("update review", str(e))
    if review is None:
        raise ReviewNotFoundError(review_id)

    old_book_id = existing.get("bookId")
    new_book_id = review.get("bookId")
    if "rating" in update_data or old_book_id != new_book_id:
        await recompute_book_rating(db, new_book_id)
    if old_book_id != new_book_id:
        await recompute_book_rating(db, old_book_id)
    return ReviewModel(**review)


async def delete_review(db, review_id: str, user: CurrentUser):
    review = await _get_owned_review(db, review_id, user)
    try:
        await db.reviews.delete_one({"_id": review["_id"]})
    except PyMongoError as e:
        raise DatabaseError("delete review", str(e))
    logger.info(f"Review {review_id} deleted by {user.email}")
    await recompute_book_rating(db, review.get("bookId"))
