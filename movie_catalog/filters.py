"""Pagination and sorting parameters for list endpoints, and the metadata they produce."""

from dataclasses import dataclass, field

from pydantic import BaseModel

from .config import settings


@dataclass
class Filters:
    page: int = settings.DEFAULT_PAGE
    page_size: int = settings.DEFAULT_PAGE_SIZE
    sort: str = "id"
    sort_safelist: tuple[str, ...] = field(default_factory=tuple)

    def sort_column(self) -> str:
        """Column name for the requested sort.

        Only values from the safelist ever reach SQL; anything else here is a
        programming error since the filters were validated first.
        """
        if self.sort not in self.sort_safelist:
            raise ValueError(f"unsafe sort parameter: {self.sort}")
        return self.sort.lstrip("-")

    def sort_direction(self) -> str:
        return "DESC" if self.sort.startswith("-") else "ASC"

    def limit(self) -> int:
        return self.page_size

    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Metadata(BaseModel):
    """Pagination summary returned alongside list results. All zero when nothing matched."""

    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0


def calculate_metadata(total_records: int, page: int, page_size: int) -> Metadata:
    if total_records == 0:
        return Metadata()

    return Metadata(
        current_page=page,
        page_size=page_size,
        first_page=1,
        last_page=(total_records + page_size - 1) // page_size,
        total_records=total_records,
    )
