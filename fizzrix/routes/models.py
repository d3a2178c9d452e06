"""Pydantic request/response models for API endpoints."""

from typing import Literal

from pydantic import BaseModel

from fizzrix.models import CardRef, CardType, Category


class CreateModule(BaseModel):
    name: str
    category: Category = "one-shot"


class RenameModule(BaseModel):
    name: str


class CreateSession(BaseModel):
    module_id: str
    name: str = "Session 1"


class UpdateSession(BaseModel):
    name: str | None = None
    locked: bool | None = None
    items: list[CardRef] | None = None


class AddCard(BaseModel):
    type: CardType
    section_id: str | None = None


class MoveCard(BaseModel):
    dx: float
    dy: float


class ShiftCard(BaseModel):
    direction: Literal["left", "right"]


class ImportResult(BaseModel):
    mode: Literal["replace", "merge"]
    modules: int
    sessions: int
