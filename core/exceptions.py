"""
Exceptions - таксономия ошибок сигнального конвейера

Каждая ошибка несёт необязательный контекст (ticker, timeframe, stage),
чтобы вызывающий код видел, какая единица работы упала и где.
"""

from typing import Any, Dict, Optional


class SignalBotError(Exception):
    """Базовая ошибка со структурированным контекстом"""

    def __init__(self, message: str, *, ticker: Optional[str] = None,
                 timeframe: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.ticker = ticker
        self.timeframe = timeframe
        self.stage = stage

    def with_context(self, *, ticker: Optional[str] = None,
                     timeframe: Optional[str] = None,
                     stage: Optional[str] = None) -> "SignalBotError":
        """Заполнить ещё пустые поля контекста"""
        self.ticker = self.ticker or ticker
        self.timeframe = self.timeframe or timeframe
        self.stage = self.stage or stage
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "ticker": self.ticker,
            "timeframe": self.timeframe,
            "stage": self.stage,
        }

    def __str__(self) -> str:
        context = [
            f"{key}={value}"
            for key, value in (("ticker", self.ticker), ("timeframe", self.timeframe), ("stage", self.stage))
            if value
        ]
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ValidationError(SignalBotError):
    """Неизвестный таймфрейм/класс/стратегия или запрос вне допустимого диапазона, отклоняется до I/O"""
    pass


class NotFoundError(SignalBotError):
    """Незарегистрированный тикер, несопоставленный символ или нет загрузчика для класса"""
    pass


class FetchError(SignalBotError):
    """Ошибка транспорта, разбора или ответа внешнего источника данных"""
    pass


class StoreError(SignalBotError):
    """Сбой хранилища реестра; объемлющая транзакция откатывается"""
    pass


class EvaluationError(SignalBotError):
    """Тикер или стратегия упали во время прогона оценки"""
    pass


class NotificationError(SignalBotError):
    """Канал уведомлений отклонил сообщение или не смог его доставить"""
    pass


class DeadlineExceededError(SignalBotError):
    """Единица работы не уложилась в свой таймаут"""
    pass


__all__ = [
    "SignalBotError",
    "ValidationError",
    "NotFoundError",
    "FetchError",
    "StoreError",
    "EvaluationError",
    "NotificationError",
    "DeadlineExceededError",
]
