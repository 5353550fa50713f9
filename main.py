import asyncio
import logging
import sys
import traceback
from typing import Optional

from aiohttp import web

from config import AppConfig
from core.app_context import AppContext, create_app_context
from core.data_models import Timeframe
from core.exceptions import NotFoundError, SignalBotError, ValidationError
from core.report_formatter import format_evaluation_report

logger = logging.getLogger(__name__)

CONTEXT_KEY = web.AppKey("context", AppContext)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, level.upper(), logging.INFO)
    )


def error_response(error: Exception, not_found_status: int = 500) -> web.Response:
    """
    JSON-ответ с ошибкой для упавшего запроса

    400 для ошибок валидации, `not_found_status` для неизвестных тикеров,
    500 для всего остального.
    """
    if isinstance(error, ValidationError):
        return web.json_response(error.to_dict(), status=400)
    if isinstance(error, NotFoundError):
        return web.json_response(error.to_dict(), status=not_found_status)
    if isinstance(error, SignalBotError):
        logger.error(f"❌ {error}")
        return web.json_response(error.to_dict(), status=500)

    logger.error(f"💥 Unexpected error: {error}")
    logger.error(traceback.format_exc())
    return web.json_response(
        {"message": f"internal error: {error}", "ticker": None, "timeframe": None, "stage": None},
        status=500
    )


def parse_timeframe(label: str) -> Timeframe:
    timeframe = Timeframe.parse(label)
    if timeframe is None:
        raise ValidationError(f"valid timeframes: {Timeframe.values()}")
    return timeframe


async def read_json(request: web.Request) -> dict:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError(f"request deserialization error: {e}", stage="decode_request") from e
    if not isinstance(body, dict):
        raise ValidationError("request deserialization error: expected a JSON object", stage="decode_request")
    return body


# ========== ОБРАБОТЧИКИ ==========

async def health_check(request: web.Request) -> web.Response:
    """Доступность хранилища"""
    context = request.app[CONTEXT_KEY]
    try:
        database = await context.health()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        database = {"healthy": False, "error": str(e)}

    healthy = bool(database.get("healthy"))
    return web.json_response(
        {"status": "healthy" if healthy else "unhealthy", "database": database},
        status=200 if healthy else 503
    )


async def list_timeframes(request: web.Request) -> web.Response:
    return web.json_response({"timeframes": Timeframe.values()})


async def list_strategies(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    return web.json_response({"strategies": context.strategies.names()})


async def register_ticker(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        body = await read_json(request)
        ticker = await context.registration.register_ticker(body.get("symbol"), body.get("class"))
    except Exception as e:
        return error_response(e, not_found_status=404)

    return web.json_response(
        {"message": f"Ticker {ticker.symbol} of class {ticker.asset_class.value} created successfully"},
        status=201
    )


async def list_tickers(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        tickers = await context.registration.list_tickers()
    except Exception as e:
        return error_response(e)
    return web.json_response({"tickers": [ticker.to_dict() for ticker in tickers]})


async def register_binding(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        body = await read_json(request)
        binding = await context.registration.register_binding(
            body.get("tickerSymbol"), body.get("timeframe"), body.get("strategy")
        )
    except Exception as e:
        return error_response(e, not_found_status=404)

    return web.json_response({
        "message": (f"binding of {binding.ticker_symbol}/{binding.timeframe.value}/{binding.strategy} "
                    "inserted successfully"),
        "binding": binding.to_dict(),
    })


async def bindings_for_ticker(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        bindings = await context.registration.bindings_for_ticker(request.match_info["ticker"])
    except Exception as e:
        return error_response(e)
    return web.json_response({"bindings": [binding.to_dict() for binding in bindings]})


async def bindings_for_timeframe(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        timeframe = parse_timeframe(request.match_info["timeframe"])
        bindings = await context.registration.bindings_for_timeframe(timeframe)
    except Exception as e:
        return error_response(e)
    return web.json_response({"bindings": [binding.to_dict() for binding in bindings]})


async def fetch_preview(request: web.Request) -> web.Response:
    """Последние цены напрямую от провайдера, ничего не сохраняется"""
    context = request.app[CONTEXT_KEY]
    try:
        timeframe = parse_timeframe(request.match_info["timeframe"])
        symbol = request.match_info["ticker"].upper()
        points = await context.refresher.fetch_preview(symbol, timeframe)
    except Exception as e:
        return error_response(e)
    return web.json_response({"data": [point.to_dict() for point in points]})


async def refresh_ticker(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        timeframe = parse_timeframe(request.match_info["timeframe"])
        symbol = request.match_info["ticker"].upper()
        summary = await context.refresher.refresh_one(symbol, timeframe)
    except Exception as e:
        return error_response(e)
    return web.json_response(summary.to_dict())


async def refresh_timeframe(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        timeframe = parse_timeframe(request.match_info["timeframe"])
        batch = await context.refresher.refresh_by_timeframe(timeframe)
    except Exception as e:
        return error_response(e)

    if batch.error is not None:
        body = batch.error.to_dict()
        body.update(batch.to_dict())
        return web.json_response(body, status=500)
    return web.json_response(batch.to_dict())


async def evaluate_timeframe(request: web.Request) -> web.Response:
    """Оценить все привязки таймфрейма и отправить отчёт в Telegram"""
    context = request.app[CONTEXT_KEY]
    try:
        timeframe = parse_timeframe(request.match_info["timeframe"])
        results = await context.orchestrator.evaluate(timeframe)

        report = format_evaluation_report(timeframe, results)
        if context.notifier is not None:
            await context.notifier.send_report(report)
        elif report:
            logger.warning("⚠️ Telegram not configured, report not sent")
    except Exception as e:
        return error_response(e)

    return web.json_response({
        "results": {
            symbol: [verdict.to_dict() for verdict in verdicts]
            for symbol, verdicts in results.items()
        }
    })


def create_app(context: AppContext) -> web.Application:
    """Веб-приложение, привязанное к контексту приложения"""
    app = web.Application()
    app[CONTEXT_KEY] = context

    app.router.add_get("/health", health_check)
    app.router.add_get("/timeframes", list_timeframes)
    app.router.add_get("/api/strategies", list_strategies)

    app.router.add_post("/api/tickers", register_ticker)
    app.router.add_get("/api/tickers", list_tickers)

    app.router.add_post("/api/bindings", register_binding)
    app.router.add_get("/api/bindings/ticker/{ticker}", bindings_for_ticker)
    app.router.add_get("/api/bindings/timeframe/{timeframe}", bindings_for_timeframe)

    app.router.add_get("/api/data/{ticker}/{timeframe}", fetch_preview)
    app.router.add_post("/api/data/{ticker}/{timeframe}", refresh_ticker)
    app.router.add_post("/api/data/{timeframe}", refresh_timeframe)

    app.router.add_post("/api/evaluate/{timeframe}", evaluate_timeframe)

    async def cleanup_handler(app):
        await app[CONTEXT_KEY].close()

    app.on_cleanup.append(cleanup_handler)
    return app


async def main(config: Optional[AppConfig] = None):
    config = config or AppConfig.from_environment()

    logger.info("=" * 70)
    logger.info("🌟 Starting signal bot")
    logger.info("=" * 70)
    logger.info(f"🔧 Environment: {config.environment}")
    logger.info(f"🔧 Port: {config.port}")
    for issue in config.validate():
        logger.warning(issue)

    context = await create_app_context(config)
    app = create_app(context)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()

    logger.info("=" * 70)
    logger.info(f"✅ Web server started on {config.host}:{config.port}")
    logger.info("=" * 70)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        logger.info("📡 Cancellation received")
    finally:
        logger.info("🔄 Shutting down...")
        await runner.cleanup()
        logger.info("🏁 Application stopped")


def run_app():
    """Точка входа с обработкой ошибок верхнего уровня"""
    config = AppConfig.from_environment()
    setup_logging(config.log_level)

    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("🔴 Stopped by user")
    except Exception as e:
        logger.error(f"💥 Fatal error: {e}")
        logger.error(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    run_app()
