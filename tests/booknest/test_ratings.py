import pytest
from bson import ObjectId

from booknest.ratings import average_rating, recompute_book_rating


@pytest.mark.parametrize(
    "ratings, expected",
    [
        ([5, 4], (4.5, 2)),
        ([], (0, 0)),
        ([4, 4, 5], (4.3, 3)),
        ([1, 2, 2, 2], (1.8, 4)),
        ([3], (3.0, 1)),
    ],
)
def test_average_rating(ratings, expected):
    assert average_rating(ratings) == expected


@pytest.mark.asyncio
async def test_recompute_writes_aggregates(db, make_book, make_review):
    book_id = await make_book()
    await make_review(book_id, rating=5)
    await make_review(book_id, rating=4)
    await make_review(str(ObjectId()), rating=1)

    result = await recompute_book_rating(db, book_id)

    book = await db.books.find_one({"_id": ObjectId(book_id)})
    assert result == (4.5, 2)
    assert book["averageRating"] == 4.5
    assert book["reviewCount"] == 2


@pytest.mark.asyncio
async def test_recompute_without_reviews_resets(db, make_book):
    book_id = await make_book(averageRating=3.5, reviewCount=4)

    await recompute_book_rating(db, book_id)

    book = await db.books.find_one({"_id": ObjectId(book_id)})
    assert book["averageRating"] == 0
    assert book["reviewCount"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("book_id", [str(ObjectId()), "not-an-id", None])
async def test_recompute_for_missing_book_is_noop(db, make_review, book_id):
    if book_id:
        await make_review(book_id, rating=2)

    assert await recompute_book_rating(db, book_id) is None
    assert await db.books.count_documents({}) == 0
