"""Guard rails applied after each market-making run."""

from __future__ import annotations

from desk_sim.types import MarketMakerStrategy, RunDecision


class StrategyGuards:
    """Rule-based run controls: stop loss, take profit and auto-repeat."""

    def evaluate(self, strategy: MarketMakerStrategy, run_pnl: float) -> RunDecision:
        """Decide whether a strategy repeats after the run just accounted.

        ``strategy`` already carries the cumulative PnL and run count.
        """
        config = strategy.config
        reasons: list[str] = []
        cumulative_roi = roi_percent(strategy.current_pnl, config.margin)
        run_roi = roi_percent(run_pnl, config.margin)

        if config.stop_loss > 0 and cumulative_roi <= -config.stop_loss:
            reasons.append("stop_loss_breached")
        if config.take_profit > 0 and cumulative_roi >= config.take_profit:
            reasons.append("take_profit_reached")
        if not config.enable_auto_repeat:
            reasons.append("auto_repeat_disabled")
        elif strategy.runs_completed >= config.max_runs:
            reasons.append("max_runs_reached")
        if config.enable_pnl_tolerance and abs(run_roi) > config.tolerance_percent:
            reasons.append("pnl_outside_tolerance")

        if "stop_loss_breached" in reasons:
            next_status = "stopped"
        elif reasons:
            next_status = "completed"
        else:
            next_status = "running"
        return RunDecision(
            repeat=not reasons,
            next_status=next_status,
            run_roi=run_roi,
            reasons=reasons,
        )


def roi_percent(pnl: float, margin: float) -> float:
    if margin <= 0:
        return 0.0
    return pnl / margin * 100.0
