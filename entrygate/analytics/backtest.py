"""
Decision Backtest

Replays a sequence of decisions against the prices that followed them.

Each actionable decision i enters at prices[i] and exits at prices[i + 1].
Position size is set by the capital at risk:

    size = capital x risk% / (entry x stop_loss%)

Metrics:
- Win rate, average return, profit factor
- Max drawdown of the capital curve (%)
- Sharpe ratio of per-trade returns (not annualized)
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from entrygate.decision_engine.schemas import EntryPoint

LOG = logging.getLogger(__name__)


TRADE_COLUMNS = [
    'entry', 'exit', 'duration', 'profit', 'profit_percent',
    'signal', 'confidence', 'confluences', 'success'
]


@dataclass
class BacktestConfig:
    """Backtest configuration"""
    timeframe: str = "1m"
    market_type: str = "regular"
    initial_capital: float = 10000.0
    max_risk_per_trade: float = 2.0     # % of capital
    stop_loss_pct: float = 0.02         # sizing stop, fraction of entry
    min_confidence: float = 0.0

    def __post_init__(self):
        if self.initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        if not 0 < self.max_risk_per_trade <= 100:
            raise ValueError("max_risk_per_trade must be in (0, 100]")
        if self.stop_loss_pct <= 0:
            raise ValueError("stop_loss_pct must be positive")


@dataclass
class BacktestResult:
    """Aggregate backtest metrics"""
    win_rate: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    average_return: float
    max_drawdown: float
    sharpe_ratio: float
    profit_factor: float
    timeframe: str
    market_type: str
    final_capital: float = 0.0
    trades: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=TRADE_COLUMNS), repr=False)

    def to_dict(self) -> dict:
        return {
            'win_rate': float(self.win_rate),
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'average_return': float(self.average_return),
            'max_drawdown': float(self.max_drawdown),
            'sharpe_ratio': float(self.sharpe_ratio),
            'profit_factor': float(self.profit_factor),
            'timeframe': self.timeframe,
            'market_type': self.market_type,
            'final_capital': float(self.final_capital),
        }


def _field(decision: Any, name: str, default=None):
    if isinstance(decision, dict):
        return decision.get(name, default)
    return getattr(decision, name, default)


def _entry_point(decision: Any) -> EntryPoint:
    value = _field(decision, 'entry_point', EntryPoint.WAIT)
    if isinstance(value, EntryPoint):
        return value
    return EntryPoint(str(value).lower())


def _confluences(decision: Any, entry_point: EntryPoint) -> int:
    """Number of readings voting with the decision"""
    indicators = _field(decision, 'indicators', None) or []
    count = 0
    for reading in indicators:
        signal = _field(reading, 'signal')
        signal = getattr(signal, 'value', signal)
        if signal == entry_point.value:
            count += 1
    return count


def run_backtest(
    decisions: Sequence[Any],
    prices: Sequence[float],
    config: Optional[BacktestConfig] = None
) -> BacktestResult:
    """
    Backtest decisions against prices.

    Args:
        decisions: Decision objects (or their to_dict() form), one per price
        prices: Price observed at each decision
        config: Backtest configuration

    Returns:
        BacktestResult with the trade log in `trades`
    """
    config = config or BacktestConfig()
    prices = np.asarray(prices, dtype=float)
    n = min(len(decisions), len(prices))
    if len(decisions) != len(prices):
        LOG.warning(f"Decisions ({len(decisions)}) and prices ({len(prices)}) differ in length, using {n}")

    capital = config.initial_capital
    trades = []

    for i in range(n - 1):
        decision = decisions[i]
        entry_point = _entry_point(decision)
        confidence = float(_field(decision, 'confidence', 0.0))

        if entry_point == EntryPoint.WAIT or confidence < config.min_confidence:
            continue

        entry_price = prices[i]
        exit_price = prices[i + 1]
        if entry_price <= 0:
            LOG.warning(f"Skipping decision {i}: non-positive entry price {entry_price}")
            continue

        risk_amount = capital * (config.max_risk_per_trade / 100.0)
        position_size = risk_amount / (entry_price * config.stop_loss_pct)

        if entry_point == EntryPoint.BUY:
            profit = (exit_price - entry_price) * position_size
            success = exit_price > entry_price
        else:
            profit = (entry_price - exit_price) * position_size
            success = exit_price < entry_price

        profit_percent = profit / capital * 100.0
        capital += profit

        trades.append({
            'entry': float(entry_price),
            'exit': float(exit_price),
            'duration': int(_field(decision, 'expiration_seconds', 60) or 60),
            'profit': float(profit),
            'profit_percent': float(profit_percent),
            'signal': entry_point.value.upper(),
            'confidence': confidence,
            'confluences': _confluences(decision, entry_point),
            'success': bool(success),
        })

    trades_df = pd.DataFrame(trades, columns=TRADE_COLUMNS)
    result = _compute_metrics(trades_df, config)
    result.final_capital = capital

    LOG.info(
        f"Backtest complete: {result.win_rate:.1f}% win rate, {result.total_trades} trades, "
        f"{result.max_drawdown:.1f}% max drawdown"
    )
    return result


def _compute_metrics(trades: pd.DataFrame, config: BacktestConfig) -> BacktestResult:
    total = len(trades)
    if total == 0:
        return BacktestResult(
            win_rate=0.0,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            average_return=0.0,
            max_drawdown=0.0,
            sharpe_ratio=0.0,
            profit_factor=0.0,
            timeframe=config.timeframe,
            market_type=config.market_type,
            trades=trades
        )

    winning = int(trades['success'].sum())
    gross_profit = trades.loc[trades['profit'] > 0, 'profit'].sum()
    gross_loss = -trades.loc[trades['profit'] < 0, 'profit'].sum()

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = np.inf if gross_profit > 0 else 0.0

    equity = config.initial_capital + trades['profit'].cumsum()
    equity = pd.concat([pd.Series([config.initial_capital]), equity], ignore_index=True)
    peak = equity.cummax()
    max_drawdown = float(((peak - equity) / peak).max() * 100.0)

    returns = trades['profit_percent'].to_numpy()
    std = returns.std()
    sharpe = float(returns.mean() / std) if std > 0 else 0.0

    return BacktestResult(
        win_rate=winning / total * 100.0,
        total_trades=total,
        winning_trades=winning,
        losing_trades=total - winning,
        average_return=float(trades['profit'].mean()),
        max_drawdown=max_drawdown,
        sharpe_ratio=sharpe,
        profit_factor=float(profit_factor),
        timeframe=config.timeframe,
        market_type=config.market_type,
        trades=trades
    )


def generate_performance_report(results: List[BacktestResult]) -> str:
    """One line per backtest: timeframe, market, win rate, trades, drawdown"""
    lines = [
        f"{r.timeframe} {r.market_type.upper()}: "
        f"{r.win_rate:.1f}% win rate, "
        f"{r.total_trades} trades, "
        f"{r.max_drawdown:.1f}% max DD"
        for r in results
    ]
    return "PERFORMANCE REPORT:\n" + "\n".join(lines)
