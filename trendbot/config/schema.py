"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

Two strategy profiles are kept side by side: ``backtest`` and
``live``.  They were tuned independently (different slow average,
RSI guards and candle window) and are deliberately not unified; each
engine picks its own profile unless told otherwise.

Secrets can be left out of the YAML file and supplied through the
environment (``BYBIT_API_KEY``, ``BYBIT_API_SECRET``,
``TELEGRAM_BOT_TOKEN``, ``TELEGRAM_CHAT_ID``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
import yaml


@dataclass
class StrategyProfile:
    """Indicator, signal and risk parameters used by one engine.

    Attributes
    ----------
    ma_fast, ma_slow : int
        Window lengths of the fast and slow simple moving averages.
    rsi_period : int
        Number of price deltas summed by the RSI.
    rsi_upper : float
        A LONG is only taken while the RSI is below this value.
    rsi_lower : float
        A SHORT is only taken while the RSI is above this value.
    extremum_period : int
        Number of candles used for resistance (highest high) and
        support (lowest low).
    min_ma_spread_pct : float
        Minimum distance between the averages, in percent of the slow
        average, required on top of the crossover.  ``0`` disables it.
    tp_pct, sl_pct : float
        Take‑profit and stop‑loss as a fraction of the entry price
        (e.g. 0.005 for 0.5 %).  Not scaled by leverage.
    short_tp_pct, short_sl_pct : float, optional
        Levels used for SHORT positions instead of `tp_pct` and
        `sl_pct`.  `None` keeps both sides symmetric.
    leverage : float
        Multiplier applied to `capital` when turning a price move into
        realised P&L.
    capital : float
        Notional capital per trade and starting equity.
    candle_limit : int
        Number of candles requested from the data provider.
    """

    ma_fast: int = 10
    ma_slow: int = 20
    rsi_period: int = 14
    rsi_upper: float = 55.0
    rsi_lower: float = 45.0
    extremum_period: int = 20
    min_ma_spread_pct: float = 0.0
    tp_pct: float = 0.01
    sl_pct: float = 0.005
    short_tp_pct: Optional[float] = None
    short_sl_pct: Optional[float] = None
    leverage: float = 5.0
    capital: float = 1000.0
    candle_limit: int = 2000

    def validate(self) -> None:
        """Raise `ValueError` if the parameters cannot drive the engines."""
        for name in ('ma_fast', 'ma_slow', 'rsi_period', 'extremum_period', 'candle_limit'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be a positive integer")
        if self.ma_fast >= self.ma_slow:
            raise ValueError("ma_fast must be shorter than ma_slow")
        # The backtest starts evaluating at index ma_slow; every indicator
        # must already have enough candles at that point.
        if self.rsi_period > self.ma_slow:
            raise ValueError("rsi_period must not exceed ma_slow")
        if self.extremum_period > self.ma_slow + 1:
            raise ValueError("extremum_period must not exceed ma_slow + 1")
        if not 0.0 <= self.rsi_lower <= 100.0 or not 0.0 <= self.rsi_upper <= 100.0:
            raise ValueError("RSI guards must lie in [0, 100]")
        if self.tp_pct <= 0 or self.sl_pct <= 0:
            raise ValueError("tp_pct and sl_pct must be positive fractions")
        for name in ('short_tp_pct', 'short_sl_pct'):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be a positive fraction")
        if self.leverage <= 0 or self.capital <= 0:
            raise ValueError("leverage and capital must be positive")
        if self.candle_limit < self.ma_slow + 1:
            raise ValueError("candle_limit must cover ma_slow + 1 candles")


def backtest_profile() -> StrategyProfile:
    """Default parameters of the historical replay."""
    return StrategyProfile()


def live_profile() -> StrategyProfile:
    """Default parameters of the live polling bot."""
    return StrategyProfile(
        ma_slow=30,
        rsi_upper=70.0,
        rsi_lower=30.0,
        min_ma_spread_pct=0.3,
        short_tp_pct=0.02,
        short_sl_pct=0.01,
        candle_limit=50,
    )


@dataclass
class ProfilesConfig:
    """The two named strategy profiles."""

    backtest: StrategyProfile = field(default_factory=backtest_profile)
    live: StrategyProfile = field(default_factory=live_profile)

    def get(self, name: str) -> StrategyProfile:
        if name not in ('backtest', 'live'):
            raise ValueError(f"Unknown profile: {name}")
        return getattr(self, name)


@dataclass
class DataConfig:
    """Data source configuration for backtests.

    Attributes
    ----------
    source : str
        ``bybit`` to download the most recent candles, ``csv`` to read
        them from `csv_dir`.
    csv_dir : str
        Directory containing one `{SYMBOL}.csv` file per symbol.
    timezone : str
        IANA timezone applied to naive CSV timestamps.
    """

    source: str = "bybit"
    csv_dir: str = "data"
    timezone: str = "UTC"


@dataclass
class BybitConfig:
    """Bybit v5 REST settings.

    Attributes
    ----------
    base_url : str
        REST endpoint (``https://api-testnet.bybit.com`` for testnet).
    category : str
        Product category, ``linear`` for USDT perpetuals.
    api_key, api_secret : str
        Credentials, only needed for orders and wallet queries.
    timeout : float
        Per‑request timeout in seconds.
    recv_window : int
        Signed‑request validity window in milliseconds.
    trading_enabled : bool
        When false (the default) entries are only logged and notified,
        never submitted as orders.
    qty_decimals : int
        Decimals the order quantity is rounded to.
    """

    base_url: str = "https://api.bybit.com"
    category: str = "linear"
    api_key: str = ""
    api_secret: str = ""
    timeout: float = 10.0
    recv_window: int = 5000
    trading_enabled: bool = False
    qty_decimals: int = 3


@dataclass
class TelegramConfig:
    """Telegram bot used as notification channel."""

    token: str = ""
    chat_id: str = ""
    timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)


@dataclass
class LiveConfig:
    """Live polling settings."""

    poll_seconds: float = 60.0


@dataclass
class LedgerConfig:
    """Location of the persistent trade ledger (JSON lines)."""

    path: str = "results/ledger.jsonl"


@dataclass
class Config:
    """Root configuration for the trading program.

    Attributes
    ----------
    symbol : str
        Instrument symbol (e.g. ``"ETHUSDT"``).
    interval : str
        Candle interval in minutes as understood by Bybit (``"1"``,
        ``"5"``, ``"60"``...).
    mode : str
        Operating mode: ``backtest`` or ``live``.
    profiles : ProfilesConfig
        Strategy parameters per engine.
    """

    symbol: str = "ETHUSDT"
    interval: str = "1"
    mode: str = "backtest"
    profiles: ProfilesConfig = field(default_factory=ProfilesConfig)
    data: DataConfig = field(default_factory=DataConfig)
    bybit: BybitConfig = field(default_factory=BybitConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _build_profile(raw: Dict[str, Any]) -> StrategyProfile:
    try:
        profile = StrategyProfile(**raw)
    except TypeError as exc:
        raise ValueError(f"Invalid profile settings: {exc}") from exc
    profile.validate()
    return profile


def config_from_dict(raw: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> Config:
    """Build a `Config` from a (possibly partial) dictionary.

    Missing fields are filled with the dataclass defaults.  Secrets
    not present in `raw` are looked up in `env` (``os.environ`` by
    default).
    """
    env = os.environ if env is None else env
    defaults: Dict[str, Any] = asdict(Config())
    merged = _merge_dict(defaults, raw or {})

    profiles = merged.get('profiles') or {}
    unknown = set(profiles) - {'backtest', 'live'}
    if unknown:
        raise ValueError(f"Unknown profile(s): {sorted(unknown)}")

    bybit_cfg = BybitConfig(**merged['bybit'])
    bybit_cfg.api_key = bybit_cfg.api_key or env.get('BYBIT_API_KEY', '')
    bybit_cfg.api_secret = bybit_cfg.api_secret or env.get('BYBIT_API_SECRET', '')

    telegram_cfg = TelegramConfig(**merged['telegram'])
    telegram_cfg.token = telegram_cfg.token or env.get('TELEGRAM_BOT_TOKEN', '')
    telegram_cfg.chat_id = str(telegram_cfg.chat_id or env.get('TELEGRAM_CHAT_ID', ''))

    data_cfg = DataConfig(**merged['data'])
    if data_cfg.source not in ('bybit', 'csv'):
        raise ValueError(f"Unsupported data source: {data_cfg.source}")

    cfg = Config(
        symbol=str(merged.get('symbol', 'ETHUSDT')).upper(),
        interval=str(merged.get('interval', '1')),
        mode=str(merged.get('mode', 'backtest')).lower(),
        profiles=ProfilesConfig(
            backtest=_build_profile(profiles.get('backtest') or asdict(backtest_profile())),
            live=_build_profile(profiles.get('live') or asdict(live_profile())),
        ),
        data=data_cfg,
        bybit=bybit_cfg,
        telegram=telegram_cfg,
        live=LiveConfig(**merged['live']),
        ledger=LedgerConfig(**merged['ledger']),
    )
    if cfg.live.poll_seconds <= 0:
        raise ValueError("live.poll_seconds must be positive")
    return cfg


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        sensible defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return config_from_dict(raw)
