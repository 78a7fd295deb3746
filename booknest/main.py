import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, status

from . import banners, crud, loans, reviews
from .auth import CurrentUser, get_current_user, init_firebase
from .exceptions import add_exception_handlers
from .models import (
    BannerModel,
    BookModel,
    BorrowRecordModel,
    BorrowRecordWithBook,
    CategoryModel,
    DashboardStats,
    ReviewCategory,
    ReviewModel,
)
from .schemas import (
    BannerCreate,
    BannerUpdate,
    BookCreate,
    BookUpdate,
    BorrowRequest,
    CategoryCreate,
    CategoryUpdate,
    MessageResponse,
    QuantityRestoreRequest,
    ReviewCreate,
    ReviewUpdate,
)
from .storage import close_db_connection, ensure_indexes, get_database, init_db

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.testing = app.state.testing if hasattr(app.state, "testing") else False

    if not app.state.testing:
        logger.info("Initializing database connection")
        await init_db()
        app.state.db = get_database()
        await ensure_indexes(app.state.db)
        app.state.token_verifier = init_firebase()

    yield

    if not app.state.testing:
        logger.info("Closing database connection")
        await close_db_connection()


app = FastAPI(
    title="BookNest API",
    lifespan=lifespan,
    description="Lending library backend: books, loans, reviews, banners and categories",
    version="1.0.0",
)

add_exception_handlers(app)


def get_db():
    return app.state.db


@app.get("/", response_model=MessageResponse)
async def root():
    return {"message": "BookNest server is running"}


# Books


@app.post("/books", response_model=BookModel, status_code=status.HTTP_201_CREATED)
async def add_book(
    book: BookCreate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    logger.info(f"{user.email} is adding book: {book.title}")
    return await crud.create_book(db, book)


@app.get("/books", response_model=List[BookModel])
async def list_books(
    category: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    db=Depends(get_db),
):
    return await crud.list_books(db, category, available, search)


@app.get("/books/{book_id}", response_model=BookModel)
async def read_book(book_id: str, db=Depends(get_db)):
    return await crud.get_book(db, book_id)


@app.put("/books/{book_id}", response_model=BookModel)
async def modify_book(
    book_id: str,
    book_update: BookUpdate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await crud.update_book(db, book_id, book_update)


@app.delete("/books/{book_id}", response_model=MessageResponse)
async def remove_book(
    book_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await crud.delete_book(db, book_id)
    return {"message": "Book deleted successfully"}


# Loans


@app.post(
    "/borrow", response_model=BorrowRecordModel, status_code=status.HTTP_201_CREATED
)
async def borrow_book(
    borrow_request: BorrowRequest,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await loans.borrow_book(db, borrow_request.user_email, borrow_request.book_id)


@app.get("/borrowed", response_model=List[BorrowRecordWithBook])
async def list_borrowed_books(
    email: str = Query(..., min_length=1),
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await crud.get_borrowed_books(db, email)


@app.delete("/borrowed/{record_id}", response_model=MessageResponse)
async def return_borrowed_book(
    record_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await loans.return_book(db, record_id)
    return {"message": "Book returned successfully"}


@app.put("/book/return", response_model=BookModel)
async def restore_book_quantity(
    restore_request: QuantityRestoreRequest, db=Depends(get_db)
):
    return await loans.restore_quantity(db, restore_request.book_id)


# Reviews


@app.get("/reviews", response_model=List[ReviewModel])
async def list_reviews(
    book_id: Optional[str] = Query(None, alias="bookId"),
    category: Optional[ReviewCategory] = None,
    db=Depends(get_db),
):
    return await reviews.list_reviews(
        db, book_id, category.value if category else None
    )


@app.get("/reviews/{review_id}", response_model=ReviewModel)
async def read_review(review_id: str, db=Depends(get_db)):
    return await reviews.get_review(db, review_id)


@app.post("/reviews", response_model=ReviewModel, status_code=status.HTTP_201_CREATED)
async def add_review(
    review: ReviewCreate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await reviews.create_review(db, review, user)


@app.put("/reviews/{review_id}", response_model=ReviewModel)
async def modify_review(
    review_id: str,
    review_update: ReviewUpdate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await reviews.update_review(db, review_id, review_update, user)


@app.delete("/reviews/{review_id}", response_model=MessageResponse)
async def remove_review(
    review_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await reviews.delete_review(db, review_id, user)
    return {"message": "Review deleted successfully"}


# Banners


@app.get("/banners", response_model=List[BannerModel])
async def list_banners(db=Depends(get_db)):
    return await banners.list_banners(db)


@app.get("/banners/active", response_model=Optional[BannerModel])
async def read_active_banner(db=Depends(get_db)):
    return await banners.get_active_banner(db)


@app.get("/banners/{banner_id}", response_model=BannerModel)
async def read_banner(banner_id: str, db=Depends(get_db)):
    return await banners.get_banner(db, banner_id)


@app.post("/banners", response_model=BannerModel, status_code=status.HTTP_201_CREATED)
async def add_banner(
    banner: BannerCreate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await banners.create_banner(db, banner)


@app.put("/banners/{banner_id}/active", response_model=BannerModel)
async def activate_banner(
    banner_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await banners.activate_banner(db, banner_id)


@app.put("/banners/{banner_id}", response_model=BannerModel)
async def modify_banner(
    banner_id: str,
    banner_update: BannerUpdate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await banners.update_banner(db, banner_id, banner_update)


@app.delete("/banners/{banner_id}", response_model=MessageResponse)
async def remove_banner(
    banner_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await banners.delete_banner(db, banner_id)
    return {"message": "Banner deleted successfully"}


# Categories


@app.get("/categories", response_model=List[CategoryModel])
async def list_categories(db=Depends(get_db)):
    return await crud.list_categories(db)


@app.get("/categories/{category_id}", response_model=CategoryModel)
async def read_category(category_id: str, db=Depends(get_db)):
    return await crud.get_category(db, category_id)


@app.post(
    "/categories", response_model=CategoryModel, status_code=status.HTTP_201_CREATED
)
async def add_category(
    category: CategoryCreate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await crud.create_category(db, category)


@app.put("/categories/{category_id}", response_model=CategoryModel)
async def modify_category(
    category_id: str,
    category_update: CategoryUpdate,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await crud.update_category(db, category_id, category_update)


@app.delete("/categories/{category_id}", response_model=MessageResponse)
async def remove_category(
    category_id: str,
    db=Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await crud.delete_category(db, category_id)
    return {"message": "Category deleted successfully"}


# Dashboard


@app.get("/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats(db=Depends(get_db)):
    return await crud.get_dashboard_stats(db)


@app.get("/dashboard/recent-books", response_model=List[BookModel])
async def recent_books(limit: int = Query(5, ge=1, le=50), db=Depends(get_db)):
    return await crud.get_recent_books(db, limit)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
