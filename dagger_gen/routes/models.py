"""Pydantic request/response models for API endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dagger_gen.models import Adversary, EchoCategory, Item, ItemCategory
from dagger_gen.session import Stage


class CreateSession(BaseModel):
    name: str = ""


class RenameSession(BaseModel):
    name: str


class StageBody(BaseModel):
    stage: Stage


class DialValueBody(BaseModel):
    value: Any = None


class ThemeBody(BaseModel):
    theme: str


class ChatBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    session_id: str = Field(alias="sessionId")


class FeedbackBody(BaseModel):
    feedback: str | None = None


class SelectAdversaryBody(BaseModel):
    adversary: Adversary
    quantity: int = 1


class SelectItemBody(BaseModel):
    item: Item
    quantity: int = 1


class QuantityBody(BaseModel):
    quantity: int


class ItemRef(BaseModel):
    category: ItemCategory
    name: str


class ItemQuantityBody(ItemRef):
    quantity: int


class EchoGenerateBody(BaseModel):
    category: EchoCategory | None = None
    count: int = Field(default=3, ge=1, le=10)
