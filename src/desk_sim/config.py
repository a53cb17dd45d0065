"""配置加载模块 - 从环境变量和 .env 文件加载模拟参数。"""

from enum import Enum
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from desk_sim.types import FillProfile, OrderSource, ParticipationRate


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量（前缀 DESK_）和 .env 文件加载配置。
    """

    model_config = SettingsConfigDict(
        env_prefix="DESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== 做市单成交节奏 ====================
    mm_start_delay_ms: int = Field(default=1000, ge=0, description="做市单开始成交前的延迟（毫秒）")
    mm_increment_min: float = Field(default=0.08, gt=0.0, le=100.0, description="做市单每次成交增量下限（%）")
    mm_increment_max: float = Field(default=0.15, gt=0.0, le=100.0, description="做市单每次成交增量上限（%）")
    mm_interval_min_ms: int = Field(default=1500, gt=0, description="做市单成交间隔下限（毫秒）")
    mm_interval_max_ms: int = Field(default=2500, gt=0, description="做市单成交间隔上限（毫秒）")

    # ==================== 普通单成交节奏 ====================
    start_delay_ms: int = Field(default=500, ge=0, description="普通单开始成交前的延迟（毫秒）")
    increment_min: float = Field(default=5.0, gt=0.0, le=100.0, description="普通单每次成交增量下限（%）")
    increment_max: float = Field(default=20.0, gt=0.0, le=100.0, description="普通单每次成交增量上限（%）")
    interval_min_ms: int = Field(default=400, gt=0, description="普通单成交间隔下限（毫秒）")
    interval_max_ms: int = Field(default=1200, gt=0, description="普通单成交间隔上限（毫秒）")

    # ==================== 策略估算 ====================
    turnover_multiplier: float = Field(default=20.0, gt=0.0, description="单轮资金周转倍数")
    maker_rebate_rate: float = Field(default=0.0001, ge=0.0, description="Maker 返佣费率")
    spread_capture_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="平均可捕获的价差比例",
    )
    days_per_month: int = Field(default=30, ge=1, le=31, description="月收益折算天数")
    aggressive_cycle_minutes: int = Field(default=5, ge=1, le=1440, description="激进档单轮时长（分钟）")
    neutral_cycle_minutes: int = Field(default=15, ge=1, le=1440, description="中性档单轮时长（分钟）")
    passive_cycle_minutes: int = Field(default=45, ge=1, le=1440, description="被动档单轮时长（分钟）")

    # ==================== 行情价格 ====================
    reference_price: float = Field(default=89128.0, gt=0.0, description="无报价时使用的模拟价格")
    price_api_url: str = Field(
        default="https://api.binance.com/api/v3/ticker/price",
        description="公开行情接口地址",
    )
    price_api_timeout: float = Field(default=10.0, gt=0.0, description="行情请求超时（秒）")
    price_quote_asset: str = Field(default="USDT", description="报价资产")

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        """校验每组上下限。"""
        pairs = [
            ("mm_increment", self.mm_increment_min, self.mm_increment_max),
            ("mm_interval_ms", self.mm_interval_min_ms, self.mm_interval_max_ms),
            ("increment", self.increment_min, self.increment_max),
            ("interval_ms", self.interval_min_ms, self.interval_max_ms),
        ]
        for name, low, high in pairs:
            if low > high:
                raise ValueError(f"{name}_min_exceeds_max")
        return self

    def fill_profile(self, source: OrderSource) -> FillProfile:
        """返回指定来源订单的成交节奏参数。"""
        if source == "market-maker":
            return FillProfile(
                start_delay_ms=self.mm_start_delay_ms,
                increment_min=self.mm_increment_min,
                increment_max=self.mm_increment_max,
                interval_min_ms=self.mm_interval_min_ms,
                interval_max_ms=self.mm_interval_max_ms,
            )
        return FillProfile(
            start_delay_ms=self.start_delay_ms,
            increment_min=self.increment_min,
            increment_max=self.increment_max,
            interval_min_ms=self.interval_min_ms,
            interval_max_ms=self.interval_max_ms,
        )

    def cycle_minutes(self, rate: ParticipationRate) -> int:
        """参与度档位对应的单轮时长（分钟）。"""
        return {
            "aggressive": self.aggressive_cycle_minutes,
            "neutral": self.neutral_cycle_minutes,
            "passive": self.passive_cycle_minutes,
        }[rate]


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载配置。"""
    global _settings
    _settings = Settings()
    return _settings
