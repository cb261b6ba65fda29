"""
QuantRank 配置设置
使用 pydantic-settings 进行配置验证和环境变量管理（前缀 QUANTRANK_）
"""

import logging
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quantrank.constants import BacktestConstants, CacheConstants

# 优先加载项目根目录下的 .env
_ = load_dotenv()

logger = logging.getLogger(__name__)


class QuantRankSettings(BaseSettings):
    """QuantRank 全局配置"""

    model_config = SettingsConfigDict(
        env_prefix="QUANTRANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 日志
    log_level: str = Field(default="INFO", description="日志级别")
    json_logs: bool = Field(default=False, description="是否输出 JSON 日志")

    # 回测默认参数
    portfolio_size: int = Field(
        default=BacktestConstants.DEFAULT_PORTFOLIO_SIZE, description="默认持仓数量"
    )
    keep_threshold: int = Field(
        default=BacktestConstants.DEFAULT_KEEP_THRESHOLD, description="默认保留阈值"
    )
    horizon_years: int = Field(
        default=BacktestConstants.DEFAULT_HORIZON_YEARS, description="默认回测年限"
    )
    rebalance_months: int = Field(
        default=BacktestConstants.DEFAULT_REBALANCE_MONTHS, description="再平衡间隔（月）"
    )

    # 数据获取
    fetch_max_concurrency: int = Field(default=5, description="最大并发请求数")
    fetch_requests_per_second: float | None = Field(
        default=None, description="每秒最大请求数（None 表示不限速）"
    )
    fetch_timeout: float = Field(default=30.0, description="单次请求超时（秒）")
    retry_max_attempts: int = Field(default=3, description="最大重试次数")
    retry_base_delay: float = Field(default=1.0, description="重试基础延迟（秒）")
    retry_max_delay: float = Field(default=60.0, description="重试最大延迟（秒）")

    # 结果缓存
    cache_ttl_days: float = Field(
        default=CacheConstants.DEFAULT_TTL_DAYS, description="回测结果缓存有效期（天）"
    )
    cache_max_entries: int | None = Field(
        default=None, description="内存缓存最大条目数（None 表示不限）"
    )

    # MongoDB（持久化结果缓存）
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017", description="MongoDB连接URI"
    )
    mongodb_database: str = Field(default="quantrank", description="MongoDB数据库名")
    cache_collection: str = Field(
        default=CacheConstants.DEFAULT_COLLECTION, description="回测结果集合名"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"无效的日志级别: {v}")
        return level

    @field_validator("mongodb_uri")
    @classmethod
    def validate_mongodb_uri(cls, v: str) -> str:
        """验证MongoDB URI"""
        if not v.startswith("mongodb://") and not v.startswith("mongodb+srv://"):
            raise ValueError(
                "MongoDB URI must start with 'mongodb://' or 'mongodb+srv://'"
            )
        return v

    @field_validator(
        "portfolio_size",
        "horizon_years",
        "rebalance_months",
        "fetch_max_concurrency",
        "retry_max_attempts",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("必须为正整数")
        return v

    @field_validator("fetch_timeout", "cache_ttl_days")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("必须大于 0")
        return v

    @model_validator(mode="after")
    def validate_keep_threshold(self) -> "QuantRankSettings":
        """保留阈值不能小于持仓数量"""
        if self.keep_threshold < self.portfolio_size:
            raise ValueError(
                f"keep_threshold ({self.keep_threshold}) 不能小于 "
                f"portfolio_size ({self.portfolio_size})"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> QuantRankSettings:
    """获取全局配置（单例）"""
    settings = QuantRankSettings()
    logger.debug(f"配置已加载: log_level={settings.log_level}")
    return settings
