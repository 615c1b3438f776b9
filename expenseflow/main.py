import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import bcrypt
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from expenseflow.budget_engine import NoBudgetConfigured
from expenseflow.config import Settings, configure_logging
from expenseflow.errors import (
    ConflictError,
    ExpenseFlowError,
    InvalidOperationError,
    NotFoundError,
    StoreWriteFailure,
    UpstreamReadFailure,
)
from expenseflow.ledger import Category, Transaction, TransactionType, normalize_category_key
from expenseflow.service import AggregationService
from expenseflow.store import LedgerStore

settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

OptionalDate = Optional[date]

app = FastAPI(title="ExpenseFlow")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_store = LedgerStore.from_url(settings.database_url)

ERROR_STATUS = {
    NotFoundError: 404,
    ConflictError: 409,
    InvalidOperationError: 400,
    UpstreamReadFailure: 503,
    StoreWriteFailure: 503,
}


def get_store() -> LedgerStore:
    return ledger_store


def get_service(store: LedgerStore = Depends(get_store)) -> AggregationService:
    return AggregationService(store)


@app.on_event("startup")
def seed_categories() -> None:
    ledger_store.seed_default_categories()


@app.exception_handler(ExpenseFlowError)
def handle_expenseflow_error(request: Request, exc: ExpenseFlowError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


class SignupPayload(BaseModel):
    name: str
    email: str
    password: str

    @classmethod
    def validate_payload(cls, payload: "SignupPayload") -> "SignupPayload":
        payload.name = payload.name.strip()
        payload.email = payload.email.strip().lower()
        if not payload.name:
            raise ValueError("Name required.")
        if len(payload.name) > 50:
            raise ValueError("Name cannot exceed 50 characters.")
        if "@" not in payload.email or " " in payload.email:
            raise ValueError("Please enter a valid email.")
        if len(payload.password) < 6:
            raise ValueError("Password must be at least 6 characters.")
        return payload


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime | None = None


class TransactionPayload(BaseModel):
    type: str
    amount: Decimal
    category: str
    description: str
    date: OptionalDate = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = TransactionType.validate(payload.type)
        payload.category = normalize_category_key(payload.category)
        payload.description = payload.description.strip()
        if payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        if not payload.category:
            raise ValueError("Category required.")
        if not payload.description:
            raise ValueError("Description required.")
        if len(payload.description) > 200:
            raise ValueError("Description cannot exceed 200 characters.")
        return payload


class TransactionUpdatePayload(BaseModel):
    type: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    description: str | None = None
    date: OptionalDate = None

    @classmethod
    def validate_payload(
        cls, payload: "TransactionUpdatePayload"
    ) -> "TransactionUpdatePayload":
        if payload.type is not None:
            payload.type = TransactionType.validate(payload.type)
        if payload.amount is not None and payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        if payload.category is not None:
            payload.category = normalize_category_key(payload.category)
            if not payload.category:
                raise ValueError("Category required.")
        if payload.description is not None:
            payload.description = payload.description.strip()
            if not payload.description:
                raise ValueError("Description required.")
            if len(payload.description) > 200:
                raise ValueError("Description cannot exceed 200 characters.")
        return payload


class TransactionResponse(BaseModel):
    id: int
    user_id: int
    type: str
    amount: Decimal
    category: str
    description: str
    date: date
    created_at: datetime | None = None


class CategoryPayload(BaseModel):
    id: str
    label: str
    icon: str | None = None
    color: str | None = None
    budget: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.id = normalize_category_key(payload.id)
        payload.label = payload.label.strip()
        if not payload.id or not payload.label:
            raise ValueError("Please provide category ID and label.")
        if len(payload.label) > 50:
            raise ValueError("Label cannot exceed 50 characters.")
        if payload.budget is not None and payload.budget <= 0:
            raise ValueError("Budget must be greater than zero.")
        return payload


class CategoryUpdatePayload(BaseModel):
    label: str | None = None
    icon: str | None = None
    color: str | None = None
    budget: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryUpdatePayload") -> dict:
        changes: dict = {}
        if payload.label is not None:
            label = payload.label.strip()
            if not label:
                raise ValueError("Category label required.")
            if len(label) > 50:
                raise ValueError("Label cannot exceed 50 characters.")
            changes["label"] = label
        if payload.icon:
            changes["icon"] = payload.icon
        if payload.color:
            changes["color"] = payload.color
        if "budget" in payload.model_fields_set:
            if payload.budget is not None and payload.budget <= 0:
                raise ValueError("Budget must be greater than zero.")
            changes["budget"] = payload.budget
        return changes


class CategoryResponse(BaseModel):
    id: str
    user_id: int | None = None
    label: str
    icon: str
    color: str
    is_default: bool
    budget: Decimal | None = None


class CategoryTotalResponse(BaseModel):
    category: str
    total: Decimal


class MonthlyBucketResponse(BaseModel):
    year: int
    month: int
    type: str
    total: Decimal


class StatisticsResponse(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    category_breakdown: list[CategoryTotalResponse]
    monthly_data: list[MonthlyBucketResponse]


class ReportPayload(BaseModel):
    period: str = "month"
    currency: str | None = None


class TopCategoryResponse(BaseModel):
    name: str
    amount: Decimal
    percentage: Decimal


class ReportResponse(BaseModel):
    period_label: str
    start_date: date
    end_date: date
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    top_categories: list[TopCategoryResponse]
    transaction_count: int
    currency: str


class BudgetAlertResponse(BaseModel):
    category_id: str
    category_label: str
    budget: Decimal
    spent: Decimal
    percentage: Decimal
    remaining: Decimal
    severity: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_user_id(
    x_user_id: str | None = Header(None, alias="x-user-id"),
    store: LedgerStore = Depends(get_store),
) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    store.get_user(user_id)
    return user_id


def to_transaction_response(txn: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=txn.id,
        user_id=txn.owner_id,
        type=txn.type,
        amount=txn.amount,
        category=txn.category,
        description=txn.description,
        date=txn.date,
        created_at=txn.created_at,
    )


def to_category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        user_id=category.owner_id,
        label=category.label,
        icon=category.icon,
        color=category.color,
        is_default=category.is_default,
        budget=category.budget,
    )


def to_user_response(row: dict) -> UserResponse:
    return UserResponse(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        created_at=row["created_at"],
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(payload: SignupPayload, store: LedgerStore = Depends(get_store)) -> UserResponse:
    try:
        payload = SignupPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    row = store.create_user(
        name=payload.name,
        email=payload.email,
        hashed_password=hash_password(payload.password),
    )
    logger.info("User signed up: %s", row["id"])
    return to_user_response(row)


@app.post("/auth/login", response_model=UserResponse)
def login(payload: CredentialsPayload, store: LedgerStore = Depends(get_store)) -> UserResponse:
    row = store.get_user_by_email(payload.email.strip().lower())
    if not row or not verify_password(payload.password, row["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    return to_user_response(row)


@app.get("/auth/me", response_model=UserResponse)
def get_me(
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> UserResponse:
    return to_user_response(store.get_user(user_id))


@app.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> list[CategoryResponse]:
    return [to_category_response(item) for item in store.fetch_categories(user_id)]


@app.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: str,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> CategoryResponse:
    return to_category_response(store.get_category(user_id, category_id))


@app.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(
    payload: CategoryPayload,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> CategoryResponse:
    try:
        payload = CategoryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    category = store.create_category(
        user_id,
        id=payload.id,
        label=payload.label,
        icon=payload.icon,
        color=payload.color,
        budget=payload.budget,
    )
    return to_category_response(category)


@app.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: str,
    payload: CategoryUpdatePayload,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> CategoryResponse:
    try:
        changes = CategoryUpdatePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_category_response(store.update_category(user_id, category_id, changes))


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> dict:
    store.delete_category(user_id, category_id)
    return {"status": "deleted"}


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    type: str | None = Query(None),
    category: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    search: str | None = Query(None),
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> list[TransactionResponse]:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="Start date must be on or before end date.")
    items = store.fetch_transactions(
        user_id,
        type=type,
        category=category,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    return [to_transaction_response(txn) for txn in items]


@app.get("/transactions/statistics", response_model=StatisticsResponse)
def transaction_statistics(
    user_id: int = Depends(get_user_id),
    service: AggregationService = Depends(get_service),
) -> StatisticsResponse:
    result = service.compute_statistics(user_id)
    return StatisticsResponse(
        total_income=result.total_income,
        total_expenses=result.total_expenses,
        balance=result.balance,
        category_breakdown=[
            CategoryTotalResponse(category=item.category, total=item.total)
            for item in result.category_breakdown
        ],
        monthly_data=[
            MonthlyBucketResponse(
                year=bucket.year,
                month=bucket.month,
                type=bucket.type,
                total=bucket.total,
            )
            for bucket in result.monthly_data
        ],
    )


@app.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> TransactionResponse:
    return to_transaction_response(store.get_transaction(user_id, transaction_id))


@app.post("/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(
    payload: TransactionPayload,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> TransactionResponse:
    try:
        payload = TransactionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    txn = store.create_transaction(
        user_id,
        type=payload.type,
        amount=payload.amount,
        category=payload.category,
        description=payload.description,
        date=payload.date or date.today(),
    )
    return to_transaction_response(txn)


@app.put("/transactions/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdatePayload,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> TransactionResponse:
    try:
        payload = TransactionUpdatePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    changes = payload.model_dump(exclude_none=True)
    return to_transaction_response(store.update_transaction(user_id, transaction_id, changes))


@app.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(get_user_id),
    store: LedgerStore = Depends(get_store),
) -> dict:
    store.delete_transaction(user_id, transaction_id)
    return {"status": "deleted"}


@app.post("/reports", response_model=ReportResponse)
def build_report(
    payload: ReportPayload,
    user_id: int = Depends(get_user_id),
    service: AggregationService = Depends(get_service),
) -> ReportResponse:
    report = service.build_report(
        user_id,
        payload.period,
        payload.currency or settings.default_currency_symbol,
    )
    return ReportResponse(
        period_label=report.period_label,
        start_date=report.start_date,
        end_date=report.end_date,
        total_income=report.total_income,
        total_expenses=report.total_expenses,
        balance=report.balance,
        top_categories=[
            TopCategoryResponse(name=item.name, amount=item.amount, percentage=item.percentage)
            for item in report.top_categories
        ],
        transaction_count=report.transaction_count,
        currency=report.currency,
    )


@app.get("/budget/alerts/{category_id}", response_model=BudgetAlertResponse)
def budget_alert(
    category_id: str,
    user_id: int = Depends(get_user_id),
    service: AggregationService = Depends(get_service),
):
    result = service.evaluate_budget_alert(user_id, category_id)
    if isinstance(result, NoBudgetConfigured):
        return JSONResponse(
            status_code=400,
            content={
                "detail": f"No budget configured for category '{result.category_id}'.",
                "code": "NO_BUDGET",
            },
        )
    return BudgetAlertResponse(
        category_id=result.category_id,
        category_label=result.category_label,
        budget=result.budget,
        spent=result.spent,
        percentage=result.percentage,
        remaining=result.remaining,
        severity=result.severity,
    )
