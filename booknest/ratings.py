import logging
import math
from typing import Iterable, Optional, Tuple

from bson import ObjectId
from pymongo.errors import PyMongoError

from .exceptions import DatabaseError

logger = logging.getLogger(__name__)


def average_rating(ratings: Iterable[int]) -> Tuple[float, int]:
    """Return ``(average, count)`` with the average rounded half-up to one decimal."""
    ratings = list(ratings)
    if not ratings:
        return 0, 0
    mean = sum(ratings) / len(ratings)
    return math.floor(mean * 10 + 0.5) / 10, len(ratings)


async def recompute_book_rating(db, book_id: Optional[str]):
    """Refresh ``averageRating`` and ``reviewCount`` on a book from its reviews.

    Reviews can outlive their book, so a missing book (or an id that can not
    be one) is silently skipped.
    """
    if not book_id or not ObjectId.is_valid(book_id):
        return None
    try:
        ratings = [
            review.get("rating", 5)
            async for review in db.reviews.find({"bookId": book_id}, {"rating": 1})
        ]
        average, count = average_rating(ratings)
        result = await db.books.update_one(
            {"_id": ObjectId(book_id)},
            {"$set": {"averageRating": average, "reviewCount": count}},
        )
    except PyMongoError as e:
        raise DatabaseError("rating recompute", str(e))

    if result.matched_count == 0:
        logger.info(f"Skipped rating recompute for missing book {book_id}")
        return None
    logger.info(f"Book {book_id} rating recomputed: {average} over {count} reviews")
    return average, count
