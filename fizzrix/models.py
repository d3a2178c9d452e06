"""Core domain models.

Stores, routes, the grid and the data context all operate on these types.
Pydantic is used for validation and serialisation at every data boundary;
`model_dump()` yields exactly the shape written to disk.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = 2

Category = Literal["one-shot", "campaign"]

CardType = Literal[
    "map",
    "intro",
    "overview",
    "episode",
    "monster",
    "magicItem",
    "appendix:monsters",  # legacy whole-appendix card
    "appendix:magicItems",  # legacy whole-appendix card
]

# Card types that point at an entry inside an array and need a section_id.
SECTION_CARD_TYPES = ("episode", "monster", "magicItem")


class ImageRef(BaseModel):
    data_url: str = ""
    alt: str = ""
    show_on_dashboard: bool = False


class MapSection(BaseModel):
    url: str = ""
    image: ImageRef = Field(default_factory=ImageRef)


class TextSection(BaseModel):
    text: str = ""
    image: ImageRef = Field(default_factory=ImageRef)


class Episode(BaseModel):
    id: str
    title: str
    content: str = ""
    image: ImageRef = Field(default_factory=ImageRef)


class AppendixEntry(BaseModel):
    """A monster or magic item."""

    id: str
    name: str
    content: str = ""
    image: ImageRef = Field(default_factory=ImageRef)


class Appendices(BaseModel):
    monsters: list[AppendixEntry] = Field(default_factory=list)
    magic_items: list[AppendixEntry] = Field(default_factory=list)


class ModuleData(BaseModel):
    """The editable content tree of a module."""

    map: MapSection = Field(default_factory=MapSection)
    introduction: TextSection = Field(default_factory=TextSection)
    overview: TextSection = Field(default_factory=TextSection)
    episodes: list[Episode] = Field(default_factory=list)
    appendices: Appendices = Field(default_factory=Appendices)


class Module(BaseModel):
    """An adventure or campaign document."""

    schema_version: int = SCHEMA_VERSION
    id: str
    name: str
    category: Category
    created_at: str
    updated_at: str
    data: ModuleData = Field(default_factory=ModuleData)


class Position(BaseModel):
    x: int
    y: int


class CardRef(BaseModel):
    """A positioned reference to one section of a module."""

    id: str
    module_id: str
    type: CardType
    section_id: str | None = None  # None for map/intro/overview
    position: Position | None = None  # None until auto-packed


class Session(BaseModel):
    """A named, lockable dashboard of cards for one module."""

    schema_version: int = SCHEMA_VERSION
    id: str
    module_id: str
    name: str
    locked: bool = False
    items: list[CardRef] = Field(default_factory=list)


class Settings(BaseModel):
    """Flat UI preferences. Unknown keys from newer clients are kept."""

    model_config = ConfigDict(extra="allow")

    theme: Literal["light", "dark", "system"] = "system"
    high_contrast: bool = False
    font_size: Literal["small", "medium", "large"] = "medium"
    reduced_motion: bool = False
    compact_mode: bool = False


class Backup(BaseModel):
    """Whole-state export document."""

    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1]
    exported_at: str = Field(default="", alias="exportedAt")
    settings: dict[str, Any]
    modules: list[dict[str, Any]]
    sessions: list[dict[str, Any]] | None = None
