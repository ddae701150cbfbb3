import math
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class PaginationParams:
    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int


def build_pagination_meta(
    total_count: int,
    pagination: PaginationParams,
) -> PaginationMeta:
    return PaginationMeta(
        page=pagination.page,
        page_size=pagination.page_size,
        total_count=total_count,
        total_pages=math.ceil(total_count / pagination.page_size) if total_count > 0 else 0,
    )
