"""
Unit tests for QuantRankSettings

测试覆盖：
1. 默认值
2. 环境变量覆盖（QUANTRANK_ 前缀）
3. 参数校验
4. 以配置为默认值构造回测参数
"""
import pytest
from pydantic import ValidationError

from quantrank.backtest.base import SimulationParams
from quantrank.data.fetcher import FetchCapability
from quantrank.errors import ConfigurationError
from quantrank.models import Strategy
from quantrank.ranking.weights import WeightVector
from quantrank.settings import QuantRankSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "QUANTRANK_LOG_LEVEL",
        "QUANTRANK_PORTFOLIO_SIZE",
        "QUANTRANK_KEEP_THRESHOLD",
        "QUANTRANK_FETCH_REQUESTS_PER_SECOND",
        "QUANTRANK_MONGODB_URI",
    ):
        monkeypatch.delenv(name, raising=False)


class TestQuantRankSettings:
    """测试全局配置"""

    def test_defaults(self):
        settings = QuantRankSettings(_env_file=None)
        assert settings.portfolio_size == 10
        assert settings.keep_threshold == 20
        assert settings.horizon_years == 5
        assert settings.cache_ttl_days == 7
        assert settings.fetch_requests_per_second is None

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("QUANTRANK_PORTFOLIO_SIZE", "5")
        monkeypatch.setenv("QUANTRANK_LOG_LEVEL", "debug")
        monkeypatch.setenv("QUANTRANK_FETCH_REQUESTS_PER_SECOND", "4.5")

        settings = QuantRankSettings(_env_file=None)
        assert settings.portfolio_size == 5
        assert settings.log_level == "DEBUG"
        assert settings.fetch_requests_per_second == 4.5

    def test_keep_threshold_below_portfolio_size(self):
        with pytest.raises(ValidationError):
            QuantRankSettings(_env_file=None, portfolio_size=10, keep_threshold=5)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"log_level": "verbose"},
            {"mongodb_uri": "postgres://localhost"},
            {"portfolio_size": 0},
            {"fetch_timeout": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            QuantRankSettings(_env_file=None, **overrides)

    def test_fetch_capability_from_settings(self):
        settings = QuantRankSettings(
            _env_file=None,
            fetch_max_concurrency=3,
            fetch_requests_per_second=2.0,
            retry_max_attempts=4,
        )
        fetcher = FetchCapability.from_settings(settings)
        assert fetcher.max_concurrency == 3
        assert fetcher.requests_per_second == 2.0
        assert fetcher.retry_config.max_attempts == 4


class TestSimulationParamsFromSettings:
    """测试以全局配置为默认值构造回测参数"""

    @pytest.fixture
    def settings(self):
        return QuantRankSettings(_env_file=None)

    def test_keep_threshold_only_for_hold_winners(self, settings):
        weights = WeightVector.default()

        hold = SimulationParams.from_settings(weights, settings, strategy=Strategy.HOLD_WINNERS)
        annual = SimulationParams.from_settings(weights, settings, strategy="annual_rebalance")

        assert hold.keep_threshold == 20
        assert annual.keep_threshold is None
        assert annual.portfolio_size == 10
        assert annual.horizon_years == 5

    def test_large_portfolio_without_keep_threshold(self, settings):
        """portfolio_size 超过配置的 K 时，非 hold_winners 策略仍可构造"""
        params = SimulationParams.from_settings(WeightVector.default(), settings, portfolio_size=25)
        assert params.portfolio_size == 25
        assert params.keep_threshold is None

    def test_overrides_win(self, settings):
        params = SimulationParams.from_settings(
            WeightVector.default(), settings, strategy=Strategy.HOLD_WINNERS,
            portfolio_size=25, keep_threshold=30,
        )
        assert (params.portfolio_size, params.keep_threshold) == (25, 30)

        with pytest.raises(ConfigurationError):
            SimulationParams.from_settings(
                WeightVector.default(), settings, strategy=Strategy.HOLD_WINNERS, portfolio_size=25
            )
