from dataclasses import dataclass
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import TEXT


class Page(SQLModel, table=True):
    id: int = Field(default=None, primary_key=True)
    name: str = Field(max_length=255, unique=True, index=True)
    content: str = Field(sa_type=TEXT)


@dataclass(frozen=True)
class PageLookup:
    """Lookup outcome; a missing page is found=False with every other field unset"""

    found: bool
    id: Optional[int] = None
    name: Optional[str] = None
    content: Optional[str] = None

    @classmethod
    def missing(cls) -> "PageLookup":
        return cls(found=False)

    @classmethod
    def of(cls, page: Page) -> "PageLookup":
        return cls(found=True, id=page.id, name=page.name, content=page.content)
