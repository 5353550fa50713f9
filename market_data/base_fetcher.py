"""
Base price fetcher - общая основа провайдерских загрузчиков цен

Проверка длины запроса, aiohttp-сессия и разбор JSON-ответов, а также
обратный проход, который превращает плотный ряд провайдера в одну точку
на период таймфрейма.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from core.data_models import AssetClass, MAX_WINDOW_LENGTH, PricePoint, Timeframe
from core.exceptions import FetchError, SignalBotError, ValidationError

logger = logging.getLogger(__name__)


def walk_backward(rows: List[Any], start: int, step: int, length: int) -> List[Any]:
    """
    Выбрать `length` строк, шагая назад от `start` с шагом `step`

    Returns:
        Выбранные строки по возрастанию (от старых к новым)

    Raises:
        FetchError: Если провайдер вернул слишком мало строк
    """
    if length <= 0:
        return []

    # Пропущенные в хвосте строки плюс сам проход
    required = (len(rows) - 1 - start) + step * (length - 1) + 1
    if len(rows) < required:
        raise FetchError(f"provider returned {len(rows)} rows, need {required}", stage="walk")

    picked = [rows[start - step * i] for i in range(length)]
    picked.reverse()
    return picked


class PriceFetcher(ABC):
    """
    📡 Загрузчик последних `length` цен тикера по таймфрейму

    Наследники объявляют свой класс активов и реализуют _fetch().
    """

    asset_class: AssetClass

    def __init__(self, fetch_timeout: float = 20.0):
        self.fetch_timeout = fetch_timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.stats = {
            "requests": 0,
            "request_errors": 0,
        }

    async def fetch(self, timeframe: Timeframe, symbol: str, length: int) -> List[PricePoint]:
        """
        Загрузить ровно `length` точек по возрастанию времени

        Raises:
            ValidationError: Длина больше ёмкости окна
            FetchError: Ошибка сети, статуса или разбора ответа
            NotFoundError: Символ не сопоставляется с провайдером
        """
        try:
            self._check_length(length)
            points = await self._fetch(timeframe, symbol, length)
        except SignalBotError as e:
            raise e.with_context(ticker=symbol, timeframe=timeframe.value)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise FetchError(f"unexpected provider payload: {e!r}", ticker=symbol,
                             timeframe=timeframe.value, stage="decode") from e

        logger.debug(f"Fetched {len(points)} {timeframe.value} prices for {symbol}")
        return points

    @abstractmethod
    async def _fetch(self, timeframe: Timeframe, symbol: str, length: int) -> List[PricePoint]:
        pass

    @staticmethod
    def _check_length(length: int):
        if length > MAX_WINDOW_LENGTH:
            raise ValidationError(f"maximum length is {MAX_WINDOW_LENGTH}", stage="fetch")
        if length < 0:
            raise ValidationError("length must not be negative", stage="fetch")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Получить или создать HTTP-сессию"""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.fetch_timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'User-Agent': 'SignalBot/1.0'}
            )
            logger.info(f"✅ HTTP session created for {type(self).__name__}")
        return self.session

    async def _request_json(self, url: str, headers: Dict[str, str], stage: str) -> Any:
        """
        GET-запрос к провайдеру и разбор JSON-тела

        Raises:
            FetchError: Статус не 200, сетевая ошибка, таймаут или тело не
                является UTF-8 JSON
        """
        session = await self._get_session()
        self.stats["requests"] += 1

        try:
            logger.debug(f"🌐 {stage} request: {url}")
            async with session.get(url, headers=headers) as response:
                body = await response.read()
                if response.status != 200:
                    error_text = body[:200].decode("utf-8", errors="replace")
                    raise FetchError(f"HTTP {response.status}: {error_text}", stage=stage)

        except FetchError:
            self.stats["request_errors"] += 1
            raise
        except aiohttp.ClientError as e:
            self.stats["request_errors"] += 1
            raise FetchError(f"Network error: {e}", stage=stage) from e
        except asyncio.TimeoutError as e:
            self.stats["request_errors"] += 1
            raise FetchError(f"request timed out after {self.fetch_timeout}s", stage=stage) from e

        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.stats["request_errors"] += 1
            raise FetchError(f"JSON decode error: {e}", stage=stage) from e

    async def close(self):
        """Закрыть HTTP-сессию"""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info(f"✅ HTTP session closed for {type(self).__name__}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __str__(self):
        status = "Active" if self.session and not self.session.closed else "Inactive"
        return f"{type(self).__name__}(class={self.asset_class.value}, status={status})"


__all__ = ["PriceFetcher", "walk_backward"]
