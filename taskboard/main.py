import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth import get_current_user
from .config import CORS_ORIGINS, LOG_LEVEL, VERSION
from .db import Board, Card, ColumnModel, User, get_db, init_db
from .errors import AppError
from .schemas import (
    AuthOut,
    BoardEnvelope,
    BoardIn,
    BoardOut,
    BoardsEnvelope,
    CardEnvelope,
    CardIn,
    CardMove,
    CardOut,
    CardPatch,
    ColumnEnvelope,
    ColumnIn,
    ColumnOut,
    ErrorEnvelope,
    ErrorItem,
    Health,
    LoginIn,
    MessageOut,
    OverdueCardOut,
    OverdueEnvelope,
    ProfileOut,
    RegisterIn,
    UserOut,
    UserProfile,
    Version,
)
from .storage import Storage
from .utils import as_utc

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("taskboard")
request_logger = logging.getLogger("taskboard.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("database tables initialized")
    yield


app = FastAPI(title="Taskboard API", version=VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        request_logger.exception("request_failed method=%s path=%s", request.method, request.url.path)
        raise
    finally:
        duration_ms = int((time.time() - start) * 1000)
        request_logger.info(
            "request method=%s path=%s status=%s duration_ms=%s",
            request.method,
            request.url.path,
            response.status_code if response is not None else "ERR",
            duration_ms,
        )


# === Error handlers ===


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body = ErrorEnvelope(error=exc.message, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        ErrorItem(
            field=".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            message=err.get("msg", "invalid value"),
        )
        for err in exc.errors()
    ]
    body = ErrorEnvelope(error="Validation failed", code="validation_error", errors=errors)
    return JSONResponse(status_code=400, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    body = ErrorEnvelope(error="Server error", code="server_error")
    return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


# === Helpers ===


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def user_out(user: User) -> UserOut:
    return UserOut(id=user.id, email=user.email, name=user.name)


def card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        columnId=card.column_id,
        title=card.title,
        content=card.content,
        categoryTag=card.category_tag,
        color=card.color,
        status=card.status,
        dueDate=as_utc(card.due_date),
        completedAt=as_utc(card.completed_at),
        order=card.order,
        createdAt=as_utc(card.created_at),
        updatedAt=as_utc(card.updated_at),
    )


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        title=column.title,
        order=column.order,
        createdAt=as_utc(column.created_at),
        cards=[card_out(c) for c in column.cards],
    )


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        title=board.title,
        userId=board.owner_id,
        createdAt=as_utc(board.created_at),
        updatedAt=as_utc(board.updated_at),
        columns=[column_out(c) for c in board.columns],
    )


def overdue_out(card: Card) -> OverdueCardOut:
    return OverdueCardOut(
        **card_out(card).model_dump(),
        boardId=card.column.board_id,
        boardTitle=card.column.board.title,
        columnTitle=card.column.title,
    )


# === Health & metadata ===


@app.get("/api/health", response_model=Health)
def health() -> Health:
    return Health()


@app.get("/api/version", response_model=Version)
def version() -> Version:
    return Version(version=VERSION)


# === Auth endpoints ===


@app.post("/api/auth/register", response_model=AuthOut, status_code=201)
def register(payload: RegisterIn, storage: Storage = Depends(get_storage)):
    token, user = storage.register(payload.email, payload.password, payload.name)
    return AuthOut(token=token, user=user_out(user))


@app.post("/api/auth/login", response_model=AuthOut)
def login(payload: LoginIn, storage: Storage = Depends(get_storage)):
    token, user = storage.login(payload.email, payload.password)
    return AuthOut(token=token, user=user_out(user))


@app.get("/api/auth/me", response_model=ProfileOut)
def me(user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    user = storage.get_user(user_id)
    return ProfileOut(
        user=UserProfile(id=user.id, email=user.email, name=user.name, createdAt=as_utc(user.created_at))
    )


# === Board endpoints ===


@app.get("/api/boards", response_model=BoardsEnvelope)
def list_boards(user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return BoardsEnvelope(boards=[board_out(b) for b in storage.list_boards(user_id)])


@app.post("/api/boards", response_model=BoardEnvelope, status_code=201)
def create_board(payload: BoardIn, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    board = storage.create_board(user_id, payload.title)
    return BoardEnvelope(board=board_out(board))


@app.get("/api/boards/{board_id}", response_model=BoardEnvelope)
def get_board(board_id: str, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return BoardEnvelope(board=board_out(storage.get_board(user_id, board_id)))


@app.put("/api/boards/{board_id}", response_model=BoardEnvelope)
def update_board(
    board_id: str,
    payload: BoardIn,
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = storage.update_board(user_id, board_id, payload.title)
    return BoardEnvelope(board=board_out(board))


@app.delete("/api/boards/{board_id}", response_model=MessageOut)
def delete_board(board_id: str, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_board(user_id, board_id)
    return MessageOut(message="Board deleted successfully")


# === Column endpoints ===


@app.post("/api/boards/{board_id}/columns", response_model=ColumnEnvelope, status_code=201)
def add_column(
    board_id: str,
    payload: ColumnIn,
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    column = storage.add_column(user_id, board_id, payload.title)
    return ColumnEnvelope(column=column_out(column))


# === Card endpoints ===


@app.post("/api/cards", response_model=CardEnvelope, status_code=201)
def create_card(payload: CardIn, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    card = storage.create_card(
        user_id,
        payload.columnId,
        payload.title,
        status=payload.status,
        **payload.model_dump(include={"content", "categoryTag", "color", "dueDate"}),
    )
    return CardEnvelope(card=card_out(card))


@app.get("/api/cards/overdue", response_model=OverdueEnvelope)
def list_overdue(user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return OverdueEnvelope(cards=[overdue_out(c) for c in storage.list_overdue(user_id)])


@app.post("/api/cards/move", response_model=CardEnvelope)
def move_card(payload: CardMove, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    card = storage.move_card(user_id, payload.cardId, payload.targetColumnId, payload.newOrder, payload.status)
    return CardEnvelope(card=card_out(card))


@app.put("/api/cards/{card_id}", response_model=CardEnvelope)
def update_card(
    card_id: str,
    payload: CardPatch,
    user_id: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    card = storage.update_card(user_id, card_id, payload.model_dump(exclude_unset=True))
    return CardEnvelope(card=card_out(card))


@app.delete("/api/cards/{card_id}", response_model=MessageOut)
def delete_card(card_id: str, user_id: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_card(user_id, card_id)
    return MessageOut(message="Card deleted successfully")
