import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Загружаем переменные окружения из .env файла
load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _parse_shorthand_map(raw: str) -> Dict[str, str]:
    """Разобрать "BITCOIN:BTC,ETHEREUM:ETH" в словарь"""
    mapping = {}
    for pair in raw.split(","):
        if ":" not in pair:
            continue
        symbol, shorthand = pair.split(":", 1)
        if symbol.strip() and shorthand.strip():
            mapping[symbol.strip().upper()] = shorthand.strip().upper()
    return mapping


@dataclass
class TimeoutConfig:
    """Дедлайны по классам операций (секунды)"""

    store_read: float = 5.0
    store_write: float = 15.0
    fetch: float = 20.0
    refresh_ticker: float = 30.0
    evaluate_ticker: float = 10.0
    sentiment: float = 5.0

    @classmethod
    def from_environment(cls) -> "TimeoutConfig":
        defaults = cls()
        return cls(
            store_read=float(os.getenv("TIMEOUT_STORE_READ", str(defaults.store_read))),
            store_write=float(os.getenv("TIMEOUT_STORE_WRITE", str(defaults.store_write))),
            fetch=float(os.getenv("TIMEOUT_FETCH", str(defaults.fetch))),
            refresh_ticker=float(os.getenv("TIMEOUT_REFRESH_TICKER", str(defaults.refresh_ticker))),
            evaluate_ticker=float(os.getenv("TIMEOUT_EVALUATE_TICKER", str(defaults.evaluate_ticker))),
            sentiment=float(os.getenv("TIMEOUT_SENTIMENT", str(defaults.sentiment))),
        )


@dataclass
class AppConfig:
    """Конфигурация приложения: создаётся один раз при старте и передаётся явно"""

    # ========== TELEGRAM ==========
    telegram_bot_token: str = ""
    telegram_chat_id: Optional[int] = None
    telegram_polling_enabled: bool = False

    # ========== ПРОВАЙДЕР АКЦИЙ (RapidAPI) ==========
    rapid_api_base_url: str = ""
    rapid_api_key: str = ""
    rapid_api_host: str = ""

    # ========== ПРОВАЙДЕРЫ КРИПТОВАЛЮТ ==========
    token_insight_base_url: str = ""
    token_insight_api_key: str = ""
    coinapi_base_url: str = ""
    coinapi_api_key: str = ""
    crypto_shorthands: Dict[str, str] = field(
        default_factory=lambda: {"BITCOIN": "BTC", "ETHEREUM": "ETH"}
    )

    # ========== ВЕБ-СЕРВЕР ==========
    host: str = "0.0.0.0"
    port: int = 8181

    # ========== ЛОГИРОВАНИЕ ==========
    log_level: str = "INFO"
    environment: str = "development"

    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @classmethod
    def from_environment(cls) -> "AppConfig":
        """
        Создать конфигурацию из переменных окружения

        Переменные окружения:
        - TELEGRAM_API_TOKEN, TELEGRAM_CHAT_ID, TELEGRAM_POLLING_ENABLED
        - RAPID_API_BASE_URL, RAPID_API_KEY, RAPID_API_HOST
        - TI_BASE_URL, TI_API_KEY, COINAPI_BASE_URL, COINAPI_API_KEY
        - CRYPTO_SHORTHANDS: "BITCOIN:BTC,ETHEREUM:ETH"
        - HOST, PORT, LOG_LEVEL, ENVIRONMENT, TIMEOUT_*

        Returns:
            AppConfig: Экземпляр конфигурации
        """
        config = cls()

        config.telegram_bot_token = os.getenv("TELEGRAM_API_TOKEN", "")
        chat_id = os.getenv("TELEGRAM_CHAT_ID", "")
        if chat_id:
            try:
                config.telegram_chat_id = int(chat_id)
            except ValueError:
                logger.error(f"Invalid TELEGRAM_CHAT_ID: {chat_id}")
        config.telegram_polling_enabled = _env_bool("TELEGRAM_POLLING_ENABLED")

        config.rapid_api_base_url = os.getenv("RAPID_API_BASE_URL", "")
        config.rapid_api_key = os.getenv("RAPID_API_KEY", "")
        config.rapid_api_host = os.getenv("RAPID_API_HOST", "")

        config.token_insight_base_url = os.getenv("TI_BASE_URL", "")
        config.token_insight_api_key = os.getenv("TI_API_KEY", "")
        config.coinapi_base_url = os.getenv("COINAPI_BASE_URL", "")
        config.coinapi_api_key = os.getenv("COINAPI_API_KEY", "")

        shorthands = os.getenv("CRYPTO_SHORTHANDS")
        if shorthands:
            config.crypto_shorthands = _parse_shorthand_map(shorthands)

        config.host = os.getenv("HOST", config.host)
        config.port = int(os.getenv("PORT", str(config.port)))
        config.log_level = os.getenv("LOG_LEVEL", config.log_level).upper()
        config.environment = os.getenv("ENVIRONMENT", config.environment)

        config.timeouts = TimeoutConfig.from_environment()

        return config

    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token) and self.telegram_chat_id is not None

    def validate(self) -> List[str]:
        """Собрать проблемы конфигурации (не бросает исключений)"""
        issues = []

        if not self.telegram_configured():
            issues.append("⚠️ Telegram not configured, evaluation reports will not be sent")

        if not self.rapid_api_base_url or not self.rapid_api_key:
            issues.append("⚠️ RapidAPI credentials missing, stock refresh will fail")

        if not self.token_insight_base_url or not self.token_insight_api_key:
            issues.append("⚠️ TokenInsight credentials missing, crypto H4/D1 refresh will fail")

        if not self.coinapi_base_url or not self.coinapi_api_key:
            issues.append("⚠️ CoinAPI credentials missing, crypto W1 refresh will fail")

        if not self.crypto_shorthands:
            issues.append("⚠️ No crypto shorthands configured for weekly data")

        return issues

    def get_config_summary(self) -> dict:
        """Сводка конфигурации без секретов"""
        return {
            "environment": self.environment,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "telegram_configured": self.telegram_configured(),
            "telegram_polling_enabled": self.telegram_polling_enabled,
            "stock_provider_configured": bool(self.rapid_api_base_url and self.rapid_api_key),
            "token_insight_configured": bool(self.token_insight_base_url and self.token_insight_api_key),
            "coinapi_configured": bool(self.coinapi_base_url and self.coinapi_api_key),
            "crypto_shorthands": dict(self.crypto_shorthands),
            "timeouts": {
                "store_read": self.timeouts.store_read,
                "store_write": self.timeouts.store_write,
                "fetch": self.timeouts.fetch,
                "refresh_ticker": self.timeouts.refresh_ticker,
                "evaluate_ticker": self.timeouts.evaluate_ticker,
                "sentiment": self.timeouts.sentiment,
            },
        }


if __name__ == "__main__":
    config = AppConfig.from_environment()
    for key, value in config.get_config_summary().items():
        print(f"{key}: {value}")
    for issue in config.validate():
        print(issue)
