import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class LibraryException(Exception):
    """Base exception for library-related errors."""

    status_code = 400


class InvalidDataError(LibraryException):
    def __init__(self, message: str):
        super().__init__(f"Invalid data: {message}")


# Not found


class ResourceNotFoundError(LibraryException):
    status_code = 404
    resource = "Resource"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} with id {resource_id} not found")


class BookNotFoundError(ResourceNotFoundError):
    resource = "Book"


class BorrowRecordNotFoundError(ResourceNotFoundError):
    resource = "Borrow record"


class ReviewNotFoundError(ResourceNotFoundError):
    resource = "Review"


class BannerNotFoundError(ResourceNotFoundError):
    resource = "Banner"


class CategoryNotFoundError(ResourceNotFoundError):
    resource = "Category"


# Conflicts


class AlreadyBorrowedError(LibraryException):
    def __init__(self, user_email: str, book_id: str):
        self.user_email = user_email
        self.book_id = book_id
        super().__init__(f"Book {book_id} is already borrowed by {user_email}")


class BookNotAvailableError(LibraryException):
    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book with id {book_id} is not available for borrowing")


class DuplicateCategoryError(LibraryException):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Category '{name}' already exists")


# Access


class AuthenticationError(LibraryException):
    status_code = 401

    def __init__(self, message: str = "Unauthorized - No token provided"):
        super().__init__(message)


class InvalidTokenError(LibraryException):
    status_code = 403

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class ForbiddenError(LibraryException):
    status_code = 403


# Store


class DatabaseError(LibraryException):
    status_code = 500

    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database error during {operation}")


# Exception handlers
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.error(f"HTTP error {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Request validation error: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "message": "Invalid request parameters. Please check your input.",
            "error": [
                {"field": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in exc.errors()
            ],
        },
    )


async def response_validation_exception_handler(
    request: Request, exc: ResponseValidationError
):
    logger.error(f"Response validation error: {exc.errors()}")
    return JSONResponse(
        status_code=500,
        content={
            "message": "The server encountered an unexpected error. Please contact support."
        },
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"message": "An unexpected error occurred. Please contact support."},
    )


async def database_exception_handler(request: Request, exc: DatabaseError):
    logger.error(f"Database error during {exc.operation}: {exc.details}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc), "error": exc.operation},
    )


async def library_exception_handler(request: Request, exc: LibraryException):
    logger.warning(f"Library error ({exc.status_code}): {str(exc)}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc)},
    )


def add_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(
        ResponseValidationError, response_validation_exception_handler
    )
    app.add_exception_handler(Exception, general_exception_handler)
    app.add_exception_handler(DatabaseError, database_exception_handler)
    app.add_exception_handler(LibraryException, library_exception_handler)
