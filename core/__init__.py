"""
Core module

Доменные типы, таксономия ошибок, рендеринг отчёта, правила регистрации и
контекст приложения, который связывает всё вместе.
"""

from .data_models import (
    MAX_WINDOW_LENGTH,
    Timeframe,
    AssetClass,
    PricePoint,
    Ticker,
    Binding,
    RefreshSummary
)
from .exceptions import (
    SignalBotError,
    ValidationError,
    NotFoundError,
    FetchError,
    StoreError,
    EvaluationError,
    DeadlineExceededError,
    NotificationError
)

__all__ = [
    "MAX_WINDOW_LENGTH",
    "Timeframe",
    "AssetClass",
    "PricePoint",
    "Ticker",
    "Binding",
    "RefreshSummary",
    "SignalBotError",
    "ValidationError",
    "NotFoundError",
    "FetchError",
    "StoreError",
    "EvaluationError",
    "DeadlineExceededError",
    "NotificationError",
]
