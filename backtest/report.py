from __future__ import annotations

from backtest.metrics import BacktestMetrics


def render_report(metrics: BacktestMetrics) -> str:
    lines = [
        f"Total trades: {metrics.total_trades}",
        f"Total profit: ${metrics.total_profit} ({metrics.total_percentage}%)",
    ]
    if metrics.open_position:
        lines.append("Position still open at end of data")
    return "\n".join(lines)
