"""CLI 入口模块 - desk-sim 命令行接口。"""

import asyncio
import importlib
import json
import math
import random
import sys
from importlib import metadata
from pathlib import Path

import click
from pydantic import ValidationError

from desk_sim import __version__
from desk_sim.config import Settings, get_settings, reload_settings
from desk_sim.data.prices import HttpPriceOracle
from desk_sim.engine import TradingDesk
from desk_sim.errors import DeskError
from desk_sim.sim.scheduler import LoopScheduler, ManualScheduler
from desk_sim.types import CarryLegs, OrderSpec
from desk_sim.utils.logging import get_logger, setup_logging

_EXCHANGES = ("Hyperliquid", "Binance", "Bybit")


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """desk-sim - 模拟多交易所下单、成交与持仓账本。"""
    if version:
        click.echo(f"desk-sim version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--orders", "-n", type=click.IntRange(0, 50), default=3, help="提交的普通订单数量")
@click.option("--carry", is_flag=True, default=False, help="额外提交一笔套利（carry）订单")
@click.option("--deploy", is_flag=True, default=False, help="额外部署一个示例做市策略")
@click.option("--seed", type=int, default=None, help="随机种子")
@click.option("--realtime", is_flag=True, default=False, help="在 asyncio 事件循环上实时运行")
@click.option("--max-seconds", type=float, default=120.0, help="最长模拟时间（秒）")
def simulate(orders: int, carry: bool, deploy: bool, seed: int | None, realtime: bool, max_seconds: float) -> None:
    """提交示例订单并推进成交直到全部完成。

    默认使用虚拟时钟离线运行；--realtime 时按真实时间推进。
    """
    setup_logging()
    logger = get_logger("desk_sim.main")
    settings = get_settings()
    rng = random.Random(seed)

    logger.info("starting_simulation", orders=orders, carry=carry, deploy=deploy, realtime=realtime, seed=seed)

    try:
        if realtime:
            desk = asyncio.run(_run_realtime(settings, rng, orders, carry, deploy, max_seconds))
        else:
            scheduler = ManualScheduler()
            desk = TradingDesk(settings, scheduler=scheduler, rng=rng)
            _submit_samples(desk, settings, orders, carry, deploy)
            elapsed = scheduler.run_until_idle(limit_ms=max_seconds * 1000)
            logger.info("simulation_finished", virtual_ms=round(elapsed, 1), pending_timers=desk.active_timers)
            desk.close()
    except DeskError as e:
        logger.error("simulation_failed", error=str(e))
        sys.exit(1)

    _echo_state(desk)


async def _run_realtime(
    settings: Settings,
    rng: random.Random,
    orders: int,
    carry: bool,
    deploy: bool,
    max_seconds: float,
) -> TradingDesk:
    loop = asyncio.get_running_loop()
    desk = TradingDesk(settings, scheduler=LoopScheduler(loop), rng=rng)
    _submit_samples(desk, settings, orders, carry, deploy)
    deadline = loop.time() + max_seconds
    try:
        while desk.active_timers and loop.time() < deadline:
            await asyncio.sleep(0.1)
    finally:
        desk.close()
    return desk


def _submit_samples(desk: TradingDesk, settings: Settings, orders: int, carry: bool, deploy: bool) -> None:
    price = settings.reference_price
    for i in range(orders):
        desk.submit_order(
            OrderSpec(
                token="BTC",
                exchange=_EXCHANGES[i % len(_EXCHANGES)],
                side="long" if i % 2 == 0 else "short",
                size=0.1,
                price=price,
            )
        )
    if carry:
        desk.submit_order(
            OrderSpec(
                token="BTC",
                exchange=f"{_EXCHANGES[0]} / {_EXCHANGES[1]}",
                side="carry",
                size=1.0,
                price=price,
                source="carry",
                carry=CarryLegs(
                    long_token="BTC",
                    long_exchange=_EXCHANGES[0],
                    long_size=0.5,
                    short_token="BTC",
                    short_exchange=_EXCHANGES[1],
                    short_size=0.5,
                ),
            )
        )
    if deploy:
        desk.deploy_strategy(
            {
                "name": "Sample MM",
                "exchange": _EXCHANGES[0],
                "pair": "BTC-USDT",
                "margin": 50,
                "leverage": 10,
            }
        )


def _echo_state(desk: TradingDesk) -> None:
    click.echo("[Orders]")
    for order in desk.get_orders():
        click.echo(
            f"   {order.id} {order.side:<5} {order.token} on {order.exchange}: "
            f"{order.status} {order.filled:.2f}%"
        )
    click.echo()
    click.echo("[Open Positions]")
    for position in desk.get_open_positions():
        click.echo(
            f"   {position.id} {position.side:<5} {position.size:g} {position.token} "
            f"on {position.exchange} @ {position.entry_price:,.2f}"
        )
    click.echo()
    click.echo("[History]")
    for entry in desk.get_history():
        volume = f" volume={entry.volume:,.2f}" if entry.volume is not None else ""
        click.echo(f"   {entry.timestamp} {entry.type}: {entry.action}{volume}")
    click.echo()
    click.echo(f"Total PnL: {desk.get_total_pnl():,.2f}")


@cli.command()
@click.option("--margin", type=float, required=True, help="保证金（USD）")
@click.option("--leverage", type=float, default=1.0, help="杠杆倍数")
@click.option("--spread-bps", type=float, default=10.0, help="报价价差（bps）")
@click.option(
    "--participation",
    type=click.Choice(["passive", "neutral", "aggressive"]),
    default="neutral",
    help="参与度档位",
)
@click.option("--auto-repeat", is_flag=True, default=False, help="启用自动重复")
@click.option("--max-runs", type=int, default=3, help="最大运行轮数")
@click.option("--as-json", is_flag=True, default=False, help="以 JSON 输出")
def estimate(
    margin: float,
    leverage: float,
    spread_bps: float,
    participation: str,
    auto_repeat: bool,
    max_runs: int,
    as_json: bool,
) -> None:
    """估算做市策略的交易量与收益。"""
    setup_logging()
    logger = get_logger("desk_sim.main")
    desk = TradingDesk(get_settings(), scheduler=ManualScheduler())
    try:
        result = desk.estimate_strategy(
            {
                "exchange": "estimate",
                "pair": "BTC-USDT",
                "margin": margin,
                "leverage": leverage,
                "spread_bps": spread_bps,
                "participation_rate": participation,
                "enable_auto_repeat": auto_repeat,
                "max_runs": max_runs,
            }
        )
    except DeskError as e:
        logger.error("estimate_failed", error=str(e))
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.as_dict(), indent=2))
        return
    click.echo("[Strategy Estimates]")
    for key, value in result.as_dict().items():
        click.echo(f"   {key}: {value:,.4f}" if isinstance(value, float) else f"   {key}: {value}")


@cli.command()
@click.argument("token")
def quote(token: str) -> None:
    """从公开行情接口查询现价。"""
    setup_logging()
    price = HttpPriceOracle(get_settings()).get_price(token)
    if price is None:
        click.echo(f"[ERROR] No price for {token}")
        sys.exit(1)
    click.echo(f"{token.upper()}: {price:,.2f}")


@cli.command()
def status() -> None:
    """显示配置摘要。"""
    setup_logging()
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("desk-sim - Status")
    click.echo("=" * 50)
    click.echo()

    click.echo("[Fill Timing]")
    click.echo(
        f"   Market maker: delay {settings.mm_start_delay_ms} ms, "
        f"+{settings.mm_increment_min}-{settings.mm_increment_max}% every "
        f"{settings.mm_interval_min_ms}-{settings.mm_interval_max_ms} ms"
    )
    click.echo(
        f"   Other sources: delay {settings.start_delay_ms} ms, "
        f"+{settings.increment_min}-{settings.increment_max}% every "
        f"{settings.interval_min_ms}-{settings.interval_max_ms} ms"
    )
    click.echo()

    click.echo("[Estimator]")
    click.echo(f"   Turnover multiplier: {settings.turnover_multiplier}")
    click.echo(f"   Maker rebate: {settings.maker_rebate_rate}")
    click.echo(f"   Spread capture: {settings.spread_capture_ratio}")
    click.echo(
        f"   Cycle minutes: aggressive {settings.aggressive_cycle_minutes}, "
        f"neutral {settings.neutral_cycle_minutes}, passive {settings.passive_cycle_minutes}"
    )
    click.echo()

    click.echo("[Prices]")
    click.echo(f"   Reference price: {settings.reference_price:,.2f}")
    click.echo(f"   Price API: {settings.price_api_url} ({settings.price_quote_asset})")
    click.echo()

    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo()
    click.echo("=" * 50)


# 运行时依赖：(发行包名, 导入名, 用途)
_RUNTIME_DEPENDENCIES = (
    ("pydantic-settings", "pydantic_settings", "settings loading"),
    ("structlog", "structlog", "order/position event logs"),
    ("httpx", "httpx", "ticker price oracle"),
    ("tenacity", "tenacity", "price fetch retries"),
    ("pandas", "pandas", "history reporting"),
)


@cli.command()
def check() -> None:
    """检查运行依赖，并校验成交模拟与估算参数。"""
    problems: list[str] = []

    click.echo("[Dependencies]")
    for dist_name, module_name, purpose in _RUNTIME_DEPENDENCIES:
        try:
            importlib.import_module(module_name)
        except ImportError:
            click.echo(f"   [MISSING] {module_name} ({purpose})")
            problems.append(dist_name)
            continue
        click.echo(f"   [OK] {module_name} {_dist_version(dist_name)} ({purpose})")
    click.echo()

    click.echo("[Settings]")
    env_note = ".env loaded" if Path(".env").exists() else "no .env, defaults + DESK_* env"
    try:
        settings = reload_settings()
    except ValidationError as exc:
        click.echo(f"   [ERROR] {exc.error_count()} invalid setting(s) ({env_note})")
        problems.append("settings")
        settings = None
    else:
        click.echo(f"   [OK] settings valid ({env_note})")
        for source in ("market-maker", "aggregator"):
            profile = settings.fill_profile(source)
            worst_ms = profile.start_delay_ms + profile.interval_max_ms * math.ceil(100 / profile.increment_min)
            click.echo(f"   [OK] {source} fill completes within {worst_ms / 1000:.1f}s")
    click.echo()

    if problems:
        click.echo(f"[ERROR] Problems found: {', '.join(problems)}. Run: pip install -e .")
    else:
        click.echo("[OK] desk-sim is ready")

    if settings is not None:
        setup_logging(settings)
        get_logger("desk_sim.main").info("dependency_check_completed", problems=problems)


def _dist_version(dist_name: str) -> str:
    try:
        return metadata.version(dist_name)
    except metadata.PackageNotFoundError:
        return "?"


# 支持 python -m desk_sim.main 调用
if __name__ == "__main__":
    cli()
