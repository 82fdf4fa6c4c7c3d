import logging
import math
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import get_db, session_scope
from models import TransactionType
from periods import resolve_month
from schemas import (
    CategoryIn,
    CategoryOut,
    DashboardStats,
    LoginIn,
    Pagination,
    PasswordChangeIn,
    PreferencesIn,
    PreferencesOut,
    ProfileIn,
    RegisterIn,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    UserOut,
)
from services import (
    CategoryService,
    DashboardService,
    EmailInUseError,
    InvalidCredentialsError,
    NotFoundError,
    ProfileService,
    TransactionFilters,
    TransactionService,
    UserService,
    seed_default_categories,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()
settings = get_settings()

app = FastAPI(title="Budget Tracker", version=APP_VERSION)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="budget_session",
    max_age=settings.session_max_age_hours * 3600,
    same_site="lax",
    https_only=settings.session_https_only,
)


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_default_categories(session)
    logger.info(f"startup: version={APP_VERSION} timezone={settings.timezone}")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"detail": "Invalid input", "errors": errors}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"database_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def current_user_id(request: Request) -> int:
    user_id = request.session.get("user_id")
    if not isinstance(user_id, int):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def require_csrf(request: Request, user_id: int = Depends(current_user_id)) -> int:
    token = request.headers.get("X-CSRF-Token")
    if not validate_csrf_token(token, user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    return user_id


def local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, EmailInUseError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def type_from_request(request: Request) -> Optional[TransactionType]:
    type_param = request.query_params.get("type")
    if not type_param:
        return None
    try:
        return TransactionType(type_param.upper())
    except ValueError:
        return None


def filters_from_request(request: Request) -> TransactionFilters:
    txn_type = type_from_request(request)
    month = request.query_params.get("month")
    period = None
    if month:
        try:
            period = resolve_month(month)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionFilters(type=txn_type, period=period)


def pagination_from_request(request: Request) -> tuple[int, int]:
    try:
        page = int(request.query_params.get("page", "1"))
        limit = int(request.query_params.get("limit", "20"))
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail="page and limit must be integers"
        ) from exc
    return max(page, 1), min(max(limit, 1), 100)


@app.post("/api/register", status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"message": "Account created successfully", "user_id": user.id}


@app.post("/api/login")
def login(data: LoginIn, request: Request, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(data.email, data.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    request.session.clear()
    request.session["user_id"] = user.id
    return {
        "user": UserOut.model_validate(user),
        "csrf_token": generate_csrf_token(user.id),
    }


@app.post("/api/logout")
def logout(request: Request, user_id: int = Depends(require_csrf)):
    request.session.clear()
    logger.info(f"logout: user_id={user_id}")
    return {"message": "Logged out"}


@app.get("/api/session")
def session_info(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        user = ProfileService(db, user_id).get()
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "user": UserOut.model_validate(user),
        "csrf_token": generate_csrf_token(user_id),
    }


@app.get("/api/dashboard", response_model=DashboardStats)
def dashboard(
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return DashboardService(db, user_id).compute(month, now=local_now())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/transactions", response_model=TransactionPage)
def list_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page, limit = pagination_from_request(request)
    items, total = TransactionService(db, user_id).list(filters, page=page, limit=limit)
    return TransactionPage(
        transactions=[TransactionOut.model_validate(txn) for txn in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Transaction deleted"}


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, user_id).list_all(type_from_request(request))
    return [CategoryOut.model_validate(c) for c in categories]


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Category deleted"}


@app.get("/api/profile", response_model=UserOut)
def get_profile(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    try:
        return UserOut.model_validate(ProfileService(db, user_id).get())
    except ValueError as exc:
        raise http_error(exc) from exc


@app.patch("/api/profile", response_model=UserOut)
def update_profile(
    data: ProfileIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        user = ProfileService(db, user_id).update(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return UserOut.model_validate(user)


@app.post("/api/profile/password")
def change_password(
    data: PasswordChangeIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        ProfileService(db, user_id).change_password(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Password updated successfully"}


@app.get("/api/preferences", response_model=PreferencesOut)
def get_preferences(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        return PreferencesOut.model_validate(ProfileService(db, user_id).get())
    except ValueError as exc:
        raise http_error(exc) from exc


@app.patch("/api/preferences", response_model=PreferencesOut)
def update_preferences(
    data: PreferencesIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        user = ProfileService(db, user_id).update_preferences(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return PreferencesOut.model_validate(user)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
