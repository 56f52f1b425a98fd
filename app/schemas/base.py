from decimal import Decimal
from typing import Annotated
from pydantic import BaseModel, PlainSerializer

# Money travels as a JSON number; Decimal is kept inside the app
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Message(BaseModel):
    success: bool = True
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)
