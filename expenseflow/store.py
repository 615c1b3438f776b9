"""SQL-backed ledger store.

A ``LedgerStore`` wraps one SQLAlchemy engine. Build it once at startup with
``LedgerStore.from_url`` and hand the same instance to every consumer; the
schema is created during construction so a constructed store is always ready.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    and_,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from expenseflow.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    StoreWriteFailure,
    UpstreamReadFailure,
)
from expenseflow.ledger import (
    DEFAULT_CATEGORIES,
    DEFAULT_COLOR,
    DEFAULT_ICON,
    Category,
    Transaction,
    TransactionType,
    coerce_decimal,
    normalize_category_key,
)

logger = logging.getLogger(__name__)

ALL = "all"
GROUPABLE_COLUMNS = {"category", "type"}
CATEGORY_FIELDS = {"label", "icon", "color", "budget"}
TRANSACTION_FIELDS = {"type", "amount", "category", "description", "date"}

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

categories = Table(
    "categories",
    metadata,
    Column("pk", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("slug", String(50), nullable=False),
    Column("label", String(50), nullable=False),
    Column("icon", String(50), nullable=False, server_default=DEFAULT_ICON),
    Column("color", String(20), nullable=False, server_default=DEFAULT_COLOR),
    Column("is_default", Boolean, nullable=False, server_default="0"),
    Column("budget", Numeric(12, 2)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "slug", name="uq_categories_user_slug"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(50), nullable=False),
    Column("description", String(200), nullable=False),
    Column("date", Date, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


def row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        owner_id=row["user_id"],
        type=row["type"],
        amount=coerce_decimal(row["amount"]),
        category=row["category"],
        description=row["description"],
        date=row["date"],
        created_at=row["created_at"],
    )


def row_to_category(row) -> Category:
    budget = row["budget"]
    return Category(
        id=row["slug"],
        owner_id=row["user_id"],
        label=row["label"],
        icon=row["icon"],
        color=row["color"],
        is_default=bool(row["is_default"]),
        budget=coerce_decimal(budget) if budget is not None else None,
    )


class LedgerStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "LedgerStore":
        kwargs: dict = {}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in {"sqlite://", "sqlite:///:memory:"}:
                kwargs["poolclass"] = StaticPool
        return cls(create_engine(database_url, **kwargs))

    @contextmanager
    def _reading(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.warning("Ledger store read failed: %s", exc)
            raise UpstreamReadFailure("Ledger store unavailable.") from exc

    @contextmanager
    def _writing(self) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            raise ConflictError("Record conflicts with existing data.") from exc
        except SQLAlchemyError as exc:
            logger.error("Ledger store write failed: %s", exc)
            raise StoreWriteFailure("Ledger store rejected the write.") from exc

    # Users

    def create_user(self, name: str, email: str, hashed_password: str) -> dict:
        try:
            with self._writing() as conn:
                result = conn.execute(
                    insert(users).values(
                        name=name,
                        email=email,
                        hashed_password=hashed_password,
                    )
                )
                user_id = result.inserted_primary_key[0]
                row = conn.execute(select(users).where(users.c.id == user_id)).mappings().one()
        except ConflictError as exc:
            raise ConflictError("Email already registered.") from exc
        return dict(row)

    def get_user(self, user_id: int) -> dict:
        with self._reading() as conn:
            row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
        if row is None:
            raise NotFoundError("User", user_id)
        return dict(row)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        with self._reading() as conn:
            row = conn.execute(select(users).where(users.c.email == email)).mappings().first()
        return dict(row) if row is not None else None

    # Transactions

    def fetch_transactions(
        self,
        user_id: int,
        *,
        type: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
    ) -> list[Transaction]:
        stmt = (
            select(transactions)
            .where(
                *_transaction_filters(
                    user_id,
                    type=type,
                    category=category,
                    start_date=start_date,
                    end_date=end_date,
                )
            )
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        )
        if search:
            stmt = stmt.where(
                func.lower(transactions.c.description).contains(search.lower(), autoescape=True)
            )
        with self._reading() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [row_to_transaction(row) for row in rows]

    def grouped_sum(
        self,
        user_id: int,
        *,
        group_by: str = "category",
        type: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict[str, Decimal]:
        if group_by not in GROUPABLE_COLUMNS:
            raise ValueError(f"Unsupported group_by: {group_by}")
        group_column = transactions.c[group_by]
        total_expr = func.coalesce(func.sum(transactions.c.amount), 0).label("total")
        stmt = (
            select(group_column.label("key"), total_expr)
            .where(
                *_transaction_filters(
                    user_id,
                    type=type,
                    category=category,
                    start_date=start_date,
                    end_date=end_date,
                )
            )
            .group_by(group_column)
        )
        with self._reading() as conn:
            rows = conn.execute(stmt).mappings().all()
        return {row["key"]: coerce_decimal(row["total"]) for row in rows}

    def get_transaction(self, user_id: int, transaction_id: int) -> Transaction:
        with self._reading() as conn:
            row = conn.execute(
                select(transactions).where(
                    transactions.c.id == transaction_id,
                    transactions.c.user_id == user_id,
                )
            ).mappings().first()
        if row is None:
            raise NotFoundError("Transaction", transaction_id)
        return row_to_transaction(row)

    def create_transaction(
        self,
        user_id: int,
        *,
        type: str,
        amount: Decimal,
        category: str,
        description: str,
        date: date,
    ) -> Transaction:
        values = {
            "user_id": user_id,
            "type": TransactionType.validate(type),
            "amount": amount,
            "category": normalize_category_key(category),
            "description": description,
            "date": date,
        }
        with self._writing() as conn:
            result = conn.execute(insert(transactions).values(**values))
            transaction_id = result.inserted_primary_key[0]
            row = conn.execute(
                select(transactions).where(transactions.c.id == transaction_id)
            ).mappings().one()
        logger.info("Transaction created: %s", transaction_id)
        return row_to_transaction(row)

    def update_transaction(self, user_id: int, transaction_id: int, changes: dict) -> Transaction:
        values = {key: value for key, value in changes.items() if key in TRANSACTION_FIELDS}
        if "type" in values:
            values["type"] = TransactionType.validate(values["type"])
        if "category" in values:
            values["category"] = normalize_category_key(values["category"])
        owner_filter = and_(
            transactions.c.id == transaction_id,
            transactions.c.user_id == user_id,
        )
        with self._writing() as conn:
            if values:
                result = conn.execute(update(transactions).where(owner_filter).values(**values))
                if result.rowcount == 0:
                    raise NotFoundError("Transaction", transaction_id)
            row = conn.execute(select(transactions).where(owner_filter)).mappings().first()
        if row is None:
            raise NotFoundError("Transaction", transaction_id)
        logger.info("Transaction updated: %s", transaction_id)
        return row_to_transaction(row)

    def delete_transaction(self, user_id: int, transaction_id: int) -> None:
        with self._writing() as conn:
            result = conn.execute(
                delete(transactions).where(
                    transactions.c.id == transaction_id,
                    transactions.c.user_id == user_id,
                )
            )
        if result.rowcount == 0:
            raise NotFoundError("Transaction", transaction_id)
        logger.info("Transaction deleted: %s", transaction_id)

    # Categories

    def seed_default_categories(self) -> int:
        with self._writing() as conn:
            existing = set(
                conn.execute(
                    select(categories.c.slug).where(categories.c.user_id.is_(None))
                ).scalars()
            )
            missing = [
                _category_values(category)
                for category in DEFAULT_CATEGORIES
                if category.id not in existing
            ]
            if missing:
                conn.execute(insert(categories), missing)
        if missing:
            logger.info("Seeded %d default categories", len(missing))
        return len(missing)

    def fetch_categories(self, user_id: int) -> list[Category]:
        stmt = (
            select(categories)
            .where(or_(categories.c.user_id == user_id, categories.c.user_id.is_(None)))
            .order_by(categories.c.is_default.desc(), categories.c.label.asc())
        )
        with self._reading() as conn:
            rows = conn.execute(stmt).mappings().all()
        items = [row_to_category(row) for row in rows]
        owned = {item.id for item in items if item.owner_id is not None}
        return [item for item in items if item.owner_id is not None or item.id not in owned]

    def get_category(self, user_id: int, category_id: str) -> Category:
        slug = normalize_category_key(category_id)
        stmt = (
            select(categories)
            .where(
                categories.c.slug == slug,
                or_(categories.c.user_id == user_id, categories.c.user_id.is_(None)),
            )
            .order_by(categories.c.user_id.is_(None))
        )
        with self._reading() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            raise NotFoundError("Category", category_id)
        return row_to_category(row)

    def create_category(
        self,
        user_id: int,
        *,
        id: str,
        label: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        budget: Optional[Decimal] = None,
    ) -> Category:
        category = Category(
            id=normalize_category_key(id),
            owner_id=user_id,
            label=label,
            icon=icon or DEFAULT_ICON,
            color=color or DEFAULT_COLOR,
            budget=budget,
        )
        with self._writing() as conn:
            clash = conn.execute(
                select(categories.c.pk).where(
                    categories.c.slug == category.id,
                    or_(categories.c.user_id == user_id, categories.c.user_id.is_(None)),
                )
            ).first()
            if clash is not None:
                raise ConflictError("Category with this ID already exists.")
            conn.execute(insert(categories).values(**_category_values(category)))
        logger.info("Category created: %s (user %s)", category.id, user_id)
        return category

    def update_category(self, user_id: int, category_id: str, changes: dict) -> Category:
        """Apply label/icon/color/budget changes to a category.

        Default categories accept only a budget. The budget is stored on a
        per-user copy so other users keep seeing the shared default.
        """
        values = {key: value for key, value in changes.items() if key in CATEGORY_FIELDS}
        current = self.get_category(user_id, category_id)
        if current.is_default and set(values) - {"budget"}:
            raise InvalidOperationError("Default categories only allow budget changes.")
        if not values:
            return current

        with self._writing() as conn:
            if current.owner_id is None:
                override = Category(
                    id=current.id,
                    owner_id=user_id,
                    label=current.label,
                    icon=current.icon,
                    color=current.color,
                    is_default=True,
                    budget=values.get("budget"),
                )
                conn.execute(insert(categories).values(**_category_values(override)))
            else:
                conn.execute(
                    update(categories)
                    .where(
                        categories.c.slug == current.id,
                        categories.c.user_id == user_id,
                    )
                    .values(**values)
                )
        logger.info("Category updated: %s (user %s)", current.id, user_id)
        return self.get_category(user_id, current.id)

    def delete_category(self, user_id: int, category_id: str) -> None:
        current = self.get_category(user_id, category_id)
        if current.is_default:
            raise InvalidOperationError("Cannot delete default categories.")
        with self._writing() as conn:
            conn.execute(
                delete(categories).where(
                    categories.c.slug == current.id,
                    categories.c.user_id == user_id,
                )
            )
        logger.info("Category deleted: %s (user %s)", current.id, user_id)


def _transaction_filters(
    user_id: int,
    *,
    type: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list:
    filters = [transactions.c.user_id == user_id]
    if type and type != ALL:
        filters.append(transactions.c.type == type)
    if category and category != ALL:
        filters.append(transactions.c.category == normalize_category_key(category))
    if start_date is not None:
        filters.append(transactions.c.date >= start_date)
    if end_date is not None:
        filters.append(transactions.c.date <= end_date)
    return filters


def _category_values(category: Category) -> dict:
    return {
        "user_id": category.owner_id,
        "slug": category.id,
        "label": category.label,
        "icon": category.icon,
        "color": category.color,
        "is_default": category.is_default,
        "budget": category.budget,
    }
