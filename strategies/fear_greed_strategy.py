"""
Fear & Greed Strategy - внешний индекс настроений рынка

Цены тикера не используются: стратегия запрашивает текущее значение
индекса alternative.me. Любая ошибка запроса превращается в
невыполненный вердикт с текстом ошибки, а не в исключение.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from .base_strategy import BaseStrategy, EvaluationResult, SignalStrength, SignalType

logger = logging.getLogger(__name__)

FNG_API_URL = "https://api.alternative.me/fng/"

# classification -> (strength, type)
CLASSIFICATIONS: Dict[str, Tuple[SignalStrength, SignalType]] = {
    "Extreme Fear": (SignalStrength.VERY_STRONG, SignalType.BUY),
    "Fear": (SignalStrength.STRONG, SignalType.BUY),
    "Neutral": (SignalStrength.NEUTRAL, SignalType.NOTIFY),
    "Greed": (SignalStrength.STRONG, SignalType.SELL),
    "Extreme Greed": (SignalStrength.VERY_STRONG, SignalType.SELL),
}


class FearGreedRequestError(Exception):
    """Ошибка получения или разбора индекса"""
    pass


class FearGreedStrategy(BaseStrategy):
    """😱 Индекс страха и жадности, только для BITCOIN"""

    whitelisted_symbols = ["BITCOIN"]

    def __init__(self, request_timeout: float = 5.0, api_url: str = FNG_API_URL):
        self.request_timeout = request_timeout
        self.api_url = api_url
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return "fng"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
        return self.session

    async def _request_json(self) -> Any:
        session = await self._get_session()
        try:
            async with session.get(self.api_url) as response:
                if response.status != 200:
                    raise FearGreedRequestError(f"get fng api: HTTP {response.status}")
                raw = await response.read()
        except aiohttp.ClientError as e:
            raise FearGreedRequestError(f"get fng api: {e}") from e
        except asyncio.TimeoutError as e:
            raise FearGreedRequestError(f"get fng api: timed out after {self.request_timeout}s") from e

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise FearGreedRequestError(f"unmarshal fng api resp body: {e}") from e

    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        try:
            payload = await self._request_json()
        except FearGreedRequestError as e:
            logger.warning(f"⚠️ {e}")
            return self._result(False, str(e))

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return self._result(False, f"expected data at least of length 1, got: {data}")

        value = data[0].get("value")
        classification = data[0].get("value_classification")

        if classification not in CLASSIFICATIONS:
            return self._result(False, f"unexpected value classification: {classification}")

        strength, signal_type = CLASSIFICATIONS[classification]
        is_fulfilled = signal_type in (SignalType.BUY, SignalType.SELL)
        return self._result(
            is_fulfilled,
            f"{strength} {signal_type}! {classification}({value})",
            signal_type,
        )

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()


__all__ = ["FearGreedStrategy", "FearGreedRequestError", "FNG_API_URL", "CLASSIFICATIONS"]
