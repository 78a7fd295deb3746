import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from booknest.exceptions import (
    AlreadyBorrowedError,
    BookNotAvailableError,
    BookNotFoundError,
    BorrowRecordNotFoundError,
    DatabaseError,
)
from booknest.loans import borrow_book, restore_quantity, return_book


async def quantity_of(db, book_id):
    book = await db.books.find_one({"_id": ObjectId(book_id)})
    return book["quantity"]


@pytest.mark.asyncio
async def test_borrow_creates_outstanding_record(db, make_book):
    book_id = await make_book(quantity=2)

    record = await borrow_book(db, "u1@example.com", book_id)

    assert record.user_email == "u1@example.com"
    assert record.book_id == book_id
    assert record.borrowed_date is not None
    assert record.return_date is None
    assert await quantity_of(db, book_id) == 1
    assert await db.borrows.count_documents({"returnDate": None}) == 1


@pytest.mark.asyncio
async def test_second_borrow_by_same_user_is_rejected(db, make_book):
    book_id = await make_book(quantity=3)
    await borrow_book(db, "u1@example.com", book_id)

    with pytest.raises(AlreadyBorrowedError):
        await borrow_book(db, "u1@example.com", book_id)

    assert await quantity_of(db, book_id) == 2
    assert await db.borrows.count_documents({}) == 1


@pytest.mark.asyncio
async def test_borrow_out_of_stock_book_is_rejected(db, make_book):
    book_id = await make_book(quantity=0)

    with pytest.raises(BookNotAvailableError):
        await borrow_book(db, "u1@example.com", book_id)

    assert await quantity_of(db, book_id) == 0
    assert await db.borrows.count_documents({}) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("book_id", [str(ObjectId()), "not-an-object-id"])
async def test_borrow_unknown_book(db, book_id):
    with pytest.raises(BookNotFoundError):
        await borrow_book(db, "u1@example.com", book_id)


@pytest.mark.asyncio
async def test_concurrent_borrows_never_overdraw_stock(db, make_book):
    book_id = await make_book(quantity=2)
    users = [f"user{i}@example.com" for i in range(5)]

    results = await asyncio.gather(
        *(borrow_book(db, user, book_id) for user in users), return_exceptions=True
    )

    borrowed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, BookNotAvailableError)]
    assert len(borrowed) == 2
    assert len(rejected) == 3
    assert await quantity_of(db, book_id) == 0


@pytest.mark.asyncio
async def test_concurrent_borrows_by_same_user_create_one_loan(db, make_book):
    book_id = await make_book(quantity=5)

    results = await asyncio.gather(
        borrow_book(db, "u1@example.com", book_id),
        borrow_book(db, "u1@example.com", book_id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, AlreadyBorrowedError) for r in results) == 1
    assert await quantity_of(db, book_id) == 4
    assert await db.borrows.count_documents({"userEmail": "u1@example.com"}) == 1


@pytest.mark.asyncio
async def test_failed_ledger_insert_restores_stock():
    book_oid = ObjectId()
    db = MagicMock()
    db.borrows.find_one = AsyncMock(return_value=None)
    db.borrows.insert_one = AsyncMock(side_effect=PyMongoError("write failed"))
    db.books.find_one_and_update = AsyncMock(
        return_value={"_id": book_oid, "quantity": 0}
    )

    with pytest.raises(DatabaseError):
        await borrow_book(db, "u1@example.com", str(book_oid))

    assert db.books.find_one_and_update.await_count == 2
    restock_update = db.books.find_one_and_update.await_args_list[1].args[1]
    assert restock_update["$inc"] == {"quantity": 1}


@pytest.mark.asyncio
async def test_return_restocks_and_removes_record(db, make_book):
    book_id = await make_book(quantity=1)
    record = await borrow_book(db, "u1@example.com", book_id)
    assert await quantity_of(db, book_id) == 0

    returned_book_id = await return_book(db, record.id)

    assert returned_book_id == book_id
    assert await quantity_of(db, book_id) == 1
    assert await db.borrows.count_documents({}) == 0


@pytest.mark.asyncio
async def test_second_return_is_not_found(db, make_book):
    book_id = await make_book(quantity=1)
    record = await borrow_book(db, "u1@example.com", book_id)
    await return_book(db, record.id)

    with pytest.raises(BorrowRecordNotFoundError):
        await return_book(db, record.id)

    assert await quantity_of(db, book_id) == 1


@pytest.mark.asyncio
async def test_return_of_unknown_record(db):
    with pytest.raises(BorrowRecordNotFoundError):
        await return_book(db, str(ObjectId()))
    with pytest.raises(BorrowRecordNotFoundError):
        await return_book(db, "bogus")


@pytest.mark.asyncio
async def test_user_can_borrow_again_after_return(db, make_book):
    book_id = await make_book(quantity=1)
    record = await borrow_book(db, "u1@example.com", book_id)
    await return_book(db, record.id)

    again = await borrow_book(db, "u1@example.com", book_id)

    assert again.id != record.id
    assert await quantity_of(db, book_id) == 0


@pytest.mark.asyncio
async def test_dune_lending_scenario(db, make_book):
    dune = await make_book(title="Dune", quantity=2)

    u1_record = await borrow_book(db, "u1@example.com", dune)
    assert await quantity_of(db, dune) == 1

    await borrow_book(db, "u2@example.com", dune)
    assert await quantity_of(db, dune) == 0

    with pytest.raises(AlreadyBorrowedError):
        await borrow_book(db, "u1@example.com", dune)
    assert await quantity_of(db, dune) == 0

    await return_book(db, u1_record.id)
    assert await quantity_of(db, dune) == 1


@pytest.mark.asyncio
async def test_restore_quantity_ignores_ledger(db, make_book):
    book_id = await make_book(quantity=0)

    book = await restore_quantity(db, book_id)

    assert book.quantity == 1
    assert await db.borrows.count_documents({}) == 0


@pytest.mark.asyncio
async def test_restore_quantity_unknown_book(db):
    with pytest.raises(BookNotFoundError):
        await restore_quantity(db, str(ObjectId()))
