"""
Analytics

Offline evaluation of decision streams.
"""

from entrygate.analytics.backtest import (
    BacktestConfig,
    BacktestResult,
    generate_performance_report,
    run_backtest,
)

__all__ = [
    'BacktestConfig',
    'BacktestResult',
    'generate_performance_report',
    'run_backtest',
]
