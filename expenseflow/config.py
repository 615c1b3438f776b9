from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./expenseflow.db"
    frontend_origin: str = "http://localhost:3000"
    default_currency_symbol: str = "$"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            frontend_origin=os.getenv("FRONTEND_ORIGIN", cls.frontend_origin),
            default_currency_symbol=os.getenv(
                "DEFAULT_CURRENCY_SYMBOL", cls.default_currency_symbol
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).strip().upper(),
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
