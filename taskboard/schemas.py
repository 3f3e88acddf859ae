from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

CardStatus = Literal["todo", "doing", "done"]


class ErrorItem(BaseModel):
    field: str
    message: str


class ErrorEnvelope(BaseModel):
    error: str
    code: str
    errors: Optional[list[ErrorItem]] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


# === Auth ===


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: Optional[str] = Field(default=None, max_length=120)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: str
    email: str
    name: Optional[str]


class UserProfile(UserOut):
    createdAt: datetime


class AuthOut(BaseModel):
    token: str
    user: UserOut


class ProfileOut(BaseModel):
    user: UserProfile


# === Boards & columns ===


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class BoardIn(BaseModel):
    title: str = Field(min_length=1, max_length=140)

    @field_validator("title")
    @classmethod
    def check_title(cls, value):
        return _not_blank(value)


class ColumnIn(BaseModel):
    title: str = Field(min_length=1, max_length=80)

    @field_validator("title")
    @classmethod
    def check_title(cls, value):
        return _not_blank(value)


class CardOut(BaseModel):
    id: str
    columnId: str
    title: str
    content: Optional[str]
    categoryTag: Optional[str]
    color: Optional[str]
    status: CardStatus
    dueDate: Optional[datetime]
    completedAt: Optional[datetime]
    order: int
    createdAt: datetime
    updatedAt: datetime


class ColumnOut(BaseModel):
    id: str
    boardId: str
    title: str
    order: int
    createdAt: datetime
    cards: list[CardOut] = []


class BoardOut(BaseModel):
    id: str
    title: str
    userId: str
    createdAt: datetime
    updatedAt: datetime
    columns: list[ColumnOut] = []


class BoardEnvelope(BaseModel):
    board: BoardOut


class BoardsEnvelope(BaseModel):
    boards: list[BoardOut]


class ColumnEnvelope(BaseModel):
    column: ColumnOut


class MessageOut(BaseModel):
    message: str


# === Cards ===


class CardIn(BaseModel):
    columnId: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=8000)
    categoryTag: Optional[str] = Field(default=None, max_length=60)
    color: Optional[str] = Field(default=None, max_length=32)
    dueDate: Optional[datetime] = None
    status: CardStatus = "todo"

    @field_validator("title")
    @classmethod
    def check_title(cls, value):
        return _not_blank(value)


class CardPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=8000)
    categoryTag: Optional[str] = Field(default=None, max_length=60)
    color: Optional[str] = Field(default=None, max_length=32)
    status: Optional[CardStatus] = None
    dueDate: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, value):
        return _not_blank(value)


class CardMove(BaseModel):
    cardId: str = Field(min_length=1)
    targetColumnId: str = Field(min_length=1)
    newOrder: int
    status: Optional[CardStatus] = None


class CardEnvelope(BaseModel):
    card: CardOut


class OverdueCardOut(CardOut):
    boardId: str
    boardTitle: str
    columnTitle: str


class OverdueEnvelope(BaseModel):
    cards: list[OverdueCardOut]
