"""Report Formatter - рендеринг результатов оценки в HTML-сообщение Telegram"""

import html
from typing import Dict, List

from core.data_models import Timeframe
from strategies.base_strategy import EvaluationResult, SignalType

FULFILLED_MARK = "✅"
NOT_FULFILLED_MARK = "❌"
NOTIFY_MARK = "🎯"


def _marker(result: EvaluationResult) -> str:
    if not result.is_fulfilled:
        return NOT_FULFILLED_MARK
    if result.signal_type == SignalType.NOTIFY:
        return NOTIFY_MARK
    return FULFILLED_MARK


def format_evaluation_report(timeframe: Timeframe, results: Dict[str, List[EvaluationResult]]) -> str:
    """
    Собрать отчёт по одному прогону оценки

    Тикеры и стратегии идут в порядке `results`. Пустой прогон даёт пустую
    строку, и ничего не отправляется.
    """
    if not results:
        return ""

    lines = [f"<b><u>{timeframe.value}</u></b>\n"]
    for symbol, verdicts in results.items():
        lines.append(f"<b>{html.escape(symbol)}</b>\n")
        for verdict in verdicts:
            lines.append(
                f"<code>{_marker(verdict)} {html.escape(verdict.strategy_name)}: "
                f"{html.escape(verdict.message)}</code>\n"
            )
        lines.append("\n")

    return "".join(lines)


__all__ = ["format_evaluation_report"]
