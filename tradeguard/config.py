"""Application configuration via environment variables."""

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings


class RiskConfig(BaseModel):
    """Risk parameters and feature gates, built once at startup and shared read-only."""

    enable_scientific_stop_loss: bool
    enable_stop_loss_filter: bool
    enable_trailing_stop_loss: bool

    atr_period: int
    atr_multiplier: float
    support_resistance_lookback: int
    support_resistance_buffer: float  # percent beyond the level
    use_atr_stop_loss: bool
    use_support_resistance_stop_loss: bool
    min_stop_loss_percent: float
    max_stop_loss_percent: float

    stop_loss_filter_min_quality: int
    stop_loss_filter_max_percent: float

    volatility_low_threshold: float  # ATR% boundaries
    volatility_high_threshold: float
    volatility_extreme_threshold: float
    noise_range_multiplier: float

    model_config = {"frozen": True}


class Settings(BaseSettings):
    database_url: str = "sqlite:///./trading.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Feature gates
    enable_scientific_stop_loss: bool = True
    enable_stop_loss_filter: bool = True
    enable_trailing_stop_loss: bool = False

    # Stop-loss calculation
    atr_period: int = 14
    atr_multiplier: float = 2.0
    support_resistance_lookback: int = 20
    support_resistance_buffer: float = 0.1
    use_atr_stop_loss: bool = True
    use_support_resistance_stop_loss: bool = True
    min_stop_loss_percent: float = 0.5
    max_stop_loss_percent: float = 5.0

    # Open-position filter
    stop_loss_filter_min_quality: int = 40
    stop_loss_filter_max_percent: float = 4.0

    # Volatility buckets (ATR as % of price)
    volatility_low_threshold: float = 1.0
    volatility_high_threshold: float = 3.0
    volatility_extreme_threshold: float = 6.0
    noise_range_multiplier: float = 2.0

    # Reconciliation
    reconcile_trade_history_limit: int = 500
    reconcile_on_startup: bool = True
    reconcile_interval_minutes: int = 0  # 0 disables the periodic job

    # Lighter
    lighter_host: str = "https://mainnet.zklighter.elliot.ai"
    lighter_private_key: str = ""
    lighter_api_key_index: int = 3
    lighter_account_index: int = 0
    lighter_markets: dict[str, int] = {"ETH_USDT": 0, "BTC_USDT": 1, "SOL_USDT": 2}
    lighter_mock_mode: bool = False

    model_config = {"env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _validate_risk_bounds(self):
        if self.min_stop_loss_percent <= 0:
            raise ValueError("min_stop_loss_percent must be positive")
        if self.min_stop_loss_percent >= self.max_stop_loss_percent:
            raise ValueError("min_stop_loss_percent must be less than max_stop_loss_percent")
        if self.atr_period < 1 or self.support_resistance_lookback < 3:
            raise ValueError("atr_period must be >= 1 and support_resistance_lookback >= 3")
        if not (
            self.volatility_low_threshold
            < self.volatility_high_threshold
            < self.volatility_extreme_threshold
        ):
            raise ValueError("volatility thresholds must be strictly increasing")
        return self

    def risk_config(self) -> RiskConfig:
        return RiskConfig(**{name: getattr(self, name) for name in RiskConfig.model_fields})


settings = Settings()
