"""
App Context - контекст приложения

Явная сборка всех долгоживущих компонентов. Создаётся один раз при старте
из AppConfig и передаётся HTTP-слою; ничего не ищется через
синглтоны уровня модуля.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import AppConfig
from core.registration_service import RegistrationService
from database import DatabaseConfig, PostgreSQLManager, RegistryRepository, initialize_database
from database.repositories.base_repository import RegistryStore
from market_data.base_fetcher import PriceFetcher
from market_data.crypto_fetcher import CryptoDataFetcher
from market_data.fetcher_registry import FetcherRegistry
from market_data.price_refresher import PriceRefresher
from market_data.stock_fetcher import StockDataFetcher
from market_data.window_store import WindowStore
from strategies.base_strategy import BaseStrategy
from strategies.strategy_orchestrator import StrategyOrchestrator
from strategies.strategy_registry import StrategyRegistry, build_default_strategies
from telegram_bot import TelegramNotifier

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """🧩 Долгоживущие компоненты, общие для обработчиков запросов"""
    config: AppConfig
    store: RegistryStore
    fetchers: FetcherRegistry
    strategies: StrategyRegistry
    window_store: WindowStore
    refresher: PriceRefresher
    orchestrator: StrategyOrchestrator
    registration: RegistrationService
    notifier: Optional[TelegramNotifier] = None
    db_manager: Optional[PostgreSQLManager] = None
    started_components: List[str] = field(default_factory=list)

    async def health(self) -> Dict[str, Any]:
        if self.db_manager is not None:
            return await self.db_manager.get_health_status()
        return {"healthy": await self.store.ping()}

    async def close(self):
        """Освободить HTTP-сессии, бота и пул БД"""
        await self.fetchers.close()
        await self.strategies.close()
        if self.notifier is not None:
            await self.notifier.close()
        if self.db_manager is not None:
            await self.db_manager.close()
        logger.info("✅ Application context closed")


def build_default_fetchers(config: AppConfig) -> List[PriceFetcher]:
    return [
        StockDataFetcher(
            base_url=config.rapid_api_base_url,
            api_key=config.rapid_api_key,
            api_host=config.rapid_api_host,
            fetch_timeout=config.timeouts.fetch,
        ),
        CryptoDataFetcher(
            token_insight_base_url=config.token_insight_base_url,
            token_insight_api_key=config.token_insight_api_key,
            coinapi_base_url=config.coinapi_base_url,
            coinapi_api_key=config.coinapi_api_key,
            shorthands=config.crypto_shorthands,
            fetch_timeout=config.timeouts.fetch,
        ),
    ]


def build_app_context(config: AppConfig, store: RegistryStore,
                      fetchers: Optional[List[PriceFetcher]] = None,
                      strategies: Optional[List[BaseStrategy]] = None,
                      notifier: Optional[Any] = None,
                      db_manager: Optional[PostgreSQLManager] = None) -> AppContext:
    """
    Собрать конвейер вокруг хранилища реестра

    По умолчанию используются боевые загрузчики и стратегии.
    """
    timeouts = config.timeouts

    fetcher_registry = FetcherRegistry(fetchers if fetchers is not None else build_default_fetchers(config))
    strategy_registry = StrategyRegistry(
        strategies if strategies is not None else build_default_strategies(timeouts.sentiment)
    )
    window_store = WindowStore(store, write_timeout=timeouts.store_write, read_timeout=timeouts.store_read)

    return AppContext(
        config=config,
        store=store,
        fetchers=fetcher_registry,
        strategies=strategy_registry,
        window_store=window_store,
        refresher=PriceRefresher(store, fetcher_registry, window_store,
                                 refresh_timeout=timeouts.refresh_ticker, read_timeout=timeouts.store_read),
        orchestrator=StrategyOrchestrator(store, window_store, strategy_registry,
                                          evaluate_timeout=timeouts.evaluate_ticker,
                                          read_timeout=timeouts.store_read),
        registration=RegistrationService(store, strategy_registry,
                                         write_timeout=timeouts.store_write, read_timeout=timeouts.store_read),
        notifier=notifier,
        db_manager=db_manager,
    )


async def create_app_context(config: AppConfig, db_config: Optional[DatabaseConfig] = None) -> AppContext:
    """Подключиться к PostgreSQL, применить миграции и собрать боевой контекст"""
    db_manager = await initialize_database(db_config)
    store = RegistryRepository(db_manager, read_timeout=config.timeouts.store_read)

    notifier = None
    if config.telegram_configured():
        notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
        if config.telegram_polling_enabled:
            notifier.start_polling()
    else:
        logger.warning("⚠️ Telegram not configured, evaluation reports will not be sent")

    context = build_app_context(config, store, notifier=notifier, db_manager=db_manager)
    context.started_components = ["database", "fetchers", "strategies"] + (["telegram"] if notifier else [])
    logger.info(f"✅ Application context ready: {', '.join(context.started_components)}")
    return context


__all__ = ["AppContext", "build_app_context", "build_default_fetchers", "create_app_context"]
