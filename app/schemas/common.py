from typing import Generic, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None

    @classmethod
    def ok(cls, data: Optional[T] = None, message: Optional[str] = None) -> 'ApiResponse[T]':
        return cls(success=True, message=message, data=data)


class ErrorResponse(BaseModel):
    success: bool = False
    message: str


class PageResponse(BaseModel, Generic[T]):
    content: list[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    last: bool

    @classmethod
    def build(cls, content: list[T], *, page: int, size: int, total: int) -> 'PageResponse[T]':
        total_pages = -(-total // size) if total else 0
        return cls(
            content=content,
            page=page,
            size=size,
            total_elements=total,
            total_pages=total_pages,
            last=page + 1 >= total_pages,
        )
