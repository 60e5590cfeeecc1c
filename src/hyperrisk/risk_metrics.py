"""Portfolio risk metrics for a wallet's positions.

Metrics:
- Volatility: population std of period returns, annualized by sqrt(252)
- Drawdown: max peak-to-trough decline of the compounded equity curve
- Value at Risk (95%): portfolio value * volatility * 1.645
- Sharpe: (annualized mean return - risk free) / volatility
- Sortino: (annualized mean return - risk free) / downside deviation
- Concentration: Herfindahl-Hirschman index of position values

Without an explicit return series, each position contributes one period
return: realized PnL (closed) or unrealized PnL (open) over entry notional.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import UTC, datetime

import numpy as np

from .config import DEFAULT_RISK_FREE_RATE
from .models import Position, RiskMetrics, Transaction

TRADING_DAYS_PER_YEAR = 252
VAR_95_Z_SCORE = 1.645


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def position_returns(positions: Sequence[Position]) -> list[float]:
    """Period returns derived from positions.

    Closed positions come first in close-time order, then open positions
    marked to market. Positions without a finite PnL or with zero entry
    notional are skipped.
    """
    closed = sorted(
        (p for p in positions if not p.is_open),
        key=lambda p: p.closed_at or datetime.min.replace(tzinfo=UTC),
    )
    open_ = [p for p in positions if p.is_open]

    returns: list[float] = []
    for position, pnl in [(p, p.realized_pnl) for p in closed] + [
        (p, p.unrealized_pnl) for p in open_
    ]:
        if pnl is None or not pnl.is_finite():
            continue
        cost = position.entry_price * position.quantity
        if not cost.is_finite() or cost == 0:
            continue
        returns.append(float(pnl / abs(cost)))
    return returns


def position_values(positions: Sequence[Position]) -> list[float]:
    """Absolute mark value of each position; non-finite values count as zero."""
    values = []
    for p in positions:
        value = p.notional
        values.append(abs(float(value)) if value.is_finite() else 0.0)
    return values


def calculate_volatility(returns: Sequence[float]) -> float:
    """Annualized volatility of a period return series."""
    if len(returns) < 2:
        return 0.0
    return _finite(float(np.std(np.asarray(returns, dtype=float))) * math.sqrt(TRADING_DAYS_PER_YEAR))


def calculate_drawdown(returns: Sequence[float]) -> float:
    """Maximum fractional drawdown (0-1) of the equity curve built from returns."""
    if not returns:
        return 0.0
    growth = np.clip(1.0 + np.asarray(returns, dtype=float), 0.0, None)
    equity = np.concatenate(([1.0], np.cumprod(growth)))
    peaks = np.maximum.accumulate(equity)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - equity) / peaks, 0.0)
    return float(min(max(_finite(float(np.max(drawdowns))), 0.0), 1.0))


def calculate_value_at_risk(positions: Sequence[Position], volatility: float) -> float:
    """Parametric 95% VaR in quote currency."""
    portfolio_value = sum(position_values(positions))
    return _finite(portfolio_value * volatility * VAR_95_Z_SCORE)


def _annualized_return(returns: Sequence[float]) -> float:
    if not returns:
        return 0.0
    return float(np.mean(np.asarray(returns, dtype=float))) * TRADING_DAYS_PER_YEAR


def calculate_sharpe_ratio(
    returns: Sequence[float],
    volatility: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """Sharpe ratio; zero when volatility is zero."""
    if volatility <= 0 or not returns:
        return 0.0
    return _finite((_annualized_return(returns) - risk_free_rate) / volatility)


def calculate_downside_deviation(
    returns: Sequence[float],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """Annualized root-mean-square of returns below the per-period risk-free rate."""
    if not returns:
        return 0.0
    target = risk_free_rate / TRADING_DAYS_PER_YEAR
    shortfall = np.minimum(np.asarray(returns, dtype=float) - target, 0.0)
    return _finite(float(np.sqrt(np.mean(shortfall**2))) * math.sqrt(TRADING_DAYS_PER_YEAR))


def calculate_sortino_ratio(
    returns: Sequence[float],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """Sortino ratio; zero when there is no downside deviation."""
    downside = calculate_downside_deviation(returns, risk_free_rate)
    if downside <= 0:
        return 0.0
    return _finite((_annualized_return(returns) - risk_free_rate) / downside)


def calculate_concentration(positions: Sequence[Position]) -> float:
    """Herfindahl-Hirschman index of position values (0 diversified, 1 single asset)."""
    values = position_values(positions)
    total = sum(values)
    if total <= 0:
        return 0.0
    return _finite(sum((v / total) ** 2 for v in values))


def compute_risk_metrics(
    wallet_id: str,
    positions: Sequence[Position],
    transactions: Sequence[Transaction],
    returns: Sequence[float] | None = None,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> RiskMetrics:
    """Compute a fresh risk snapshot.

    Args:
        wallet_id: Wallet the snapshot belongs to
        positions: Reconstructed positions, preferably marked to market
        transactions: The wallet's transactions (accepted for API symmetry;
            metrics are position-derived)
        returns: Optional historical period returns overriding the
            position-derived series
        risk_free_rate: Annual risk-free rate

    Returns:
        RiskMetrics; all zeros for an empty position set
    """
    if not positions:
        return RiskMetrics(wallet_id=wallet_id)

    series = list(returns) if returns is not None else position_returns(positions)
    series = [r for r in series if math.isfinite(r)]

    volatility = calculate_volatility(series)

    return RiskMetrics(
        wallet_id=wallet_id,
        volatility=volatility,
        drawdown=calculate_drawdown(series),
        value_at_risk=calculate_value_at_risk(positions, volatility),
        sharpe_ratio=calculate_sharpe_ratio(series, volatility, risk_free_rate),
        sortino_ratio=calculate_sortino_ratio(series, risk_free_rate),
        concentration=calculate_concentration(positions),
    )
