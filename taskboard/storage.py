from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .auth import create_access_token, hash_password, verify_password
from .db import Board, Card, ColumnModel, User
from .errors import AuthError, ConflictError, NotFoundError, ServerError, ValidationError
from .utils import as_utc, clamp, now_utc

logger = logging.getLogger(__name__)

SEED_COLUMNS = ("To-do", "Doing", "Done")

# wire name -> Card attribute
CARD_FIELDS = {
    "title": "title",
    "content": "content",
    "categoryTag": "category_tag",
    "color": "color",
    "dueDate": "due_date",
}

Owned = TypeVar("Owned", Board, ColumnModel, Card)


def apply_status(card: Card, status: str, now: Optional[datetime] = None) -> None:
    """Set ``card.status`` and keep ``completed_at`` in step with it.

    Entering ``done`` stamps the completion time, leaving it clears the
    stamp, staying in ``done`` keeps the original stamp.
    """
    if status == "done":
        if card.status != "done" or card.completed_at is None:
            card.completed_at = now or now_utc()
    else:
        card.completed_at = None
    card.status = status


class Storage:
    """Persistence operations, all scoped to the requesting user."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("transaction rolled back")
            raise ServerError("Server error") from exc
        except Exception:
            self.db.rollback()
            raise

    # === Ownership ===
    def owned_query(self, model: type[Owned], user_id: str) -> Select:
        """Select ``model`` rows reachable from ``user_id`` via board ownership."""
        stmt = select(model)
        if model is Card:
            stmt = stmt.join(Card.column)
        if model is not Board:
            stmt = stmt.join(ColumnModel.board)
        return stmt.where(Board.owner_id == user_id)

    def _owned(self, model: type[Owned], user_id: str, entity_id: str, label: str, lock: bool = False) -> Owned:
        stmt = self.owned_query(model, user_id).where(model.id == entity_id)
        if lock:
            stmt = stmt.with_for_update(of=model)
        found = self.db.scalars(stmt).first()
        if found is None:
            raise NotFoundError(f"{label} not found")
        return found

    def get_board(self, user_id: str, board_id: str) -> Board:
        return self._owned(Board, user_id, board_id, "Board")

    def get_column(self, user_id: str, column_id: str) -> ColumnModel:
        return self._owned(ColumnModel, user_id, column_id, "Column")

    def get_card(self, user_id: str, card_id: str) -> Card:
        return self._owned(Card, user_id, card_id, "Card")

    # === Users ===
    def register(self, email: str, password: str, name: Optional[str]) -> tuple[str, User]:
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters")
        if self.db.scalars(select(User).where(User.email == email)).first() is not None:
            raise ConflictError("Email already registered")
        user = User(email=email, password_hash=hash_password(password), name=name)
        try:
            with self.transaction():
                self.db.add(user)
                self.db.flush()
        except ServerError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError("Email already registered") from exc
            raise
        logger.info("user registered user_id=%s", user.id)
        return create_access_token(user.id), user

    def login(self, email: str, password: str) -> tuple[str, User]:
        user = self.db.scalars(select(User).where(User.email == email)).first()
        if user is None or not verify_password(password, user.password_hash):
            raise AuthError("Invalid credentials", status_code=400)
        return create_access_token(user.id), user

    def get_user(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # === Board operations ===
    def list_boards(self, user_id: str) -> list[Board]:
        stmt = (
            self.owned_query(Board, user_id)
            .options(selectinload(Board.columns).selectinload(ColumnModel.cards))
            .order_by(Board.updated_at.desc(), Board.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    def create_board(self, user_id: str, title: str) -> Board:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        board = Board(title=title, owner_id=user_id)
        board.columns = [ColumnModel(title=name, order=i) for i, name in enumerate(SEED_COLUMNS)]
        with self.transaction():
            self.db.add(board)
        logger.info("board created board_id=%s user_id=%s", board.id, user_id)
        return board

    def update_board(self, user_id: str, board_id: str, title: str) -> Board:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        board = self.get_board(user_id, board_id)
        with self.transaction():
            board.title = title
        return board

    def delete_board(self, user_id: str, board_id: str) -> None:
        board = self.get_board(user_id, board_id)
        with self.transaction():
            self.db.delete(board)
        logger.info("board deleted board_id=%s user_id=%s", board_id, user_id)

    # === Column operations ===
    def add_column(self, user_id: str, board_id: str, title: str) -> ColumnModel:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        board = self.get_board(user_id, board_id)
        max_order = self.db.scalar(select(func.max(ColumnModel.order)).where(ColumnModel.board_id == board.id))
        column = ColumnModel(title=title, board_id=board.id, order=(max_order if max_order is not None else -1) + 1)
        with self.transaction():
            self.db.add(column)
        return column

    # === Card operations ===
    def _siblings(self, column_id: str, exclude: Optional[str] = None) -> list[Card]:
        stmt = select(Card).where(Card.column_id == column_id)
        if exclude is not None:
            stmt = stmt.where(Card.id != exclude)
        stmt = stmt.order_by(Card.order, Card.created_at).with_for_update()
        return list(self.db.scalars(stmt))

    @staticmethod
    def _reindex(cards: list[Card]) -> None:
        for index, card in enumerate(cards):
            if card.order != index:
                card.order = index

    def create_card(self, user_id: str, column_id: str, title: str, status: str = "todo", **fields: Any) -> Card:
        column = self.get_column(user_id, column_id)
        max_order = self.db.scalar(select(func.max(Card.order)).where(Card.column_id == column.id))
        card = Card(column_id=column.id, title=title.strip(), order=(max_order if max_order is not None else -1) + 1)
        self._set_fields(card, fields)
        apply_status(card, status)
        with self.transaction():
            self.db.add(card)
        return card

    def _set_fields(self, card: Card, fields: dict[str, Any]) -> None:
        for key, value in fields.items():
            attr = CARD_FIELDS[key]
            if attr == "title":
                if value is None or not value.strip():
                    raise ValidationError("Title is required")
                value = value.strip()
            elif attr == "due_date":
                value = as_utc(value)
            setattr(card, attr, value)

    def update_card(self, user_id: str, card_id: str, fields: dict[str, Any]) -> Card:
        card = self.get_card(user_id, card_id)
        fields = dict(fields)
        status = fields.pop("status", None)
        with self.transaction():
            self._set_fields(card, fields)
            if status is not None:
                apply_status(card, status)
        return card

    def delete_card(self, user_id: str, card_id: str) -> None:
        card = self.get_card(user_id, card_id)
        column_id = card.column_id
        with self.transaction():
            self.db.delete(card)
            self._reindex(self._siblings(column_id, exclude=card_id))

    def move_card(
        self,
        user_id: str,
        card_id: str,
        target_column_id: str,
        new_order: int,
        status: Optional[str] = None,
    ) -> Card:
        """Move a card to ``new_order`` in ``target_column_id`` in one transaction.

        ``new_order`` is an insertion index clamped to the target list.
        Both the source and the target column end up numbered 0..n-1.
        """
        with self.transaction():
            card = self._owned(Card, user_id, card_id, "Card", lock=True)
            target = self.get_column(user_id, target_column_id)
            source_id = card.column_id

            if source_id == target.id:
                cards = self._siblings(source_id, exclude=card.id)
                cards.insert(clamp(new_order, 0, len(cards)), card)
                self._reindex(cards)
            else:
                cards = self._siblings(target.id)
                cards.insert(clamp(new_order, 0, len(cards)), card)
                card.column = target
                self._reindex(cards)
                self._reindex(self._siblings(source_id, exclude=card.id))

            if status is not None:
                apply_status(card, status)
            card.updated_at = now_utc()
        logger.info(
            "card moved card_id=%s from=%s to=%s order=%s status=%s",
            card.id,
            source_id,
            target.id,
            card.order,
            card.status,
        )
        return card

    def list_overdue(self, user_id: str) -> list[Card]:
        stmt = (
            self.owned_query(Card, user_id)
            .where(Card.status != "done", Card.due_date.is_not(None), Card.due_date < now_utc())
            .options(selectinload(Card.column).selectinload(ColumnModel.board))
            .order_by(Card.due_date)
        )
        return list(self.db.scalars(stmt))
