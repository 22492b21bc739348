from pydantic import BaseModel

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "Pagination":
        pages = (total + limit - 1) // limit if total > 0 else 0
        return cls(page=page, limit=limit, total=total, pages=pages)
