"""Configuration management for the trading bot with validation and typed access"""

import json
import logging
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from dotenv import load_dotenv

from ragtrader.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SYMBOLS = ["BTC/USD", "ETH/USD"]


# ============================================================================
# CONFIGURATION DATACLASSES
# ============================================================================

@dataclass
class ExchangeConfig:
    """Configuration for the Roostoo exchange API"""

    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    base_url: str = "https://mock-api.roostoo.com"
    timeout: int = 30
    max_retries: int = 3

    def validate(self) -> None:
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if self.timeout < 1:
            raise ValueError(f"timeout must be >= 1, got {self.timeout}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


@dataclass
class OpenAIConfig:
    """Configuration for the OpenAI market-context model"""

    api_key: Optional[str] = None
    model: str = "gpt-4.1-mini"
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.3
    max_tokens: int = 3000
    input_cost_per_mtok: float = 0.0
    output_cost_per_mtok: float = 0.0

    def validate(self) -> None:
        if not self.model:
            raise ValueError("model name cannot be empty")
        if not (0 <= self.temperature <= 2):
            raise ValueError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if self.input_cost_per_mtok < 0 or self.output_cost_per_mtok < 0:
            raise ValueError("Pricing costs cannot be negative")


@dataclass
class DeepSeekConfig:
    """Configuration for the DeepSeek strategy/analysis model"""

    api_key: Optional[str] = None
    model: str = "deepseek-chat"
    base_url: str = "https://api.deepseek.com/v1"
    temperature: float = 0.2
    max_tokens: int = 4000
    input_cost_per_mtok: float = 0.27
    output_cost_per_mtok: float = 1.10

    def validate(self) -> None:
        if not self.model:
            raise ValueError("model name cannot be empty")
        if not (0 <= self.temperature <= 2):
            raise ValueError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if self.input_cost_per_mtok < 0 or self.output_cost_per_mtok < 0:
            raise ValueError("Pricing costs cannot be negative")


@dataclass
class TradingConfig:
    """Configuration for the trading cycle and risk limits"""

    interval_seconds: float = 60.0
    symbols: List[str] = field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    max_position_size: float = 0.1  # Max fraction of portfolio value per order
    risk_per_trade: float = 0.02
    dry_run: bool = False

    def validate(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {self.interval_seconds}")
        if not self.symbols:
            raise ValueError("symbols cannot be empty")
        for symbol in self.symbols:
            if "/" not in str(symbol):
                raise ValueError(f"symbol must look like BASE/QUOTE, got {symbol!r}")
        if not (0 < self.max_position_size <= 1):
            raise ValueError(f"max_position_size must be in (0, 1], got {self.max_position_size}")
        if not (0 <= self.risk_per_trade <= 1):
            raise ValueError(f"risk_per_trade must be between 0 and 1, got {self.risk_per_trade}")


@dataclass
class StoreConfig:
    """Configuration for the strategy similarity store"""

    path: str = "data/vector_store/strategies.jsonl"
    top_k: int = 5

    def validate(self) -> None:
        if not self.path:
            raise ValueError("path cannot be empty")
        if self.top_k < 0:
            raise ValueError(f"top_k must be >= 0, got {self.top_k}")


@dataclass
class ServerConfig:
    """Configuration for the dashboard API"""

    host: str = "0.0.0.0"
    port: int = 3000

    def validate(self) -> None:
        if not (0 < self.port < 65536):
            raise ValueError(f"port must be in 1-65535, got {self.port}")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_dir: Optional[str] = "logs"

    def validate(self) -> None:
        if not isinstance(logging.getLevelName(self.level.upper()), int) and self.level.upper() != "TRADE":
            raise ValueError(f"unknown log level {self.level!r}")


# ============================================================================
# MAIN CONFIG MANAGER
# ============================================================================

class ConfigManager:
    """
    Central configuration management with validation and typed access

    Values come from, in increasing precedence: dataclass defaults, the JSON
    config file, environment variables (a local .env file is loaded first).
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Load and validate configuration

        Args:
            config_file: Optional path to a JSON config file

        Raises:
            json.JSONDecodeError: If config file is invalid JSON
            ConfigurationError: If configuration validation fails
        """
        load_dotenv()

        self.config_path = Path(config_file) if config_file else None

        if self.config_path is None:
            raw_config = {}
        elif not self.config_path.exists():
            logger.warning(f"Config file not found: {config_file}. Using defaults and environment variables.")
            raw_config = {}
        else:
            with open(self.config_path) as f:
                raw_config = json.load(f)

        self._parse_config(raw_config)

    @staticmethod
    def _get_secret(env_var: str, json_value: Optional[str] = None) -> Optional[str]:
        """
        Get secret from environment variable, falling back to JSON value.
        Filters out placeholder values containing 'YOUR_'.
        """
        val = os.getenv(env_var)
        if not val:
            val = json_value

        if val and isinstance(val, str) and 'YOUR_' in val:
            return None
        return val or None

    @staticmethod
    def _get_env(env_var: str, json_value: Any, cast=str) -> Any:
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            return json_value
        try:
            return cast(raw)
        except ValueError as e:
            raise ConfigurationError(f"Environment variable {env_var}={raw!r} is invalid: {e}", env_var)

    @staticmethod
    def _validated(section: str, cfg):
        try:
            cfg.validate()
        except ValueError as e:
            raise ConfigurationError(f"Invalid {section} config: {e}", section)
        return cfg

    def _parse_config(self, raw_config: Dict[str, Any]) -> None:
        """Parse raw JSON config into typed dataclasses"""

        exchange_raw = raw_config.get('exchange', {})
        self.exchange = self._validated('exchange', ExchangeConfig(
            api_key=self._get_secret('ROOSTOO_API_KEY', exchange_raw.get('api_key')),
            secret_key=self._get_secret('ROOSTOO_SECRET_KEY', exchange_raw.get('secret_key')),
            base_url=self._get_env('ROOSTOO_BASE_URL', exchange_raw.get('base_url', 'https://mock-api.roostoo.com')),
            timeout=exchange_raw.get('timeout', 30),
            max_retries=exchange_raw.get('max_retries', 3),
        ))

        openai_raw = raw_config.get('openai', {})
        self.openai = self._validated('openai', OpenAIConfig(
            api_key=self._get_secret('OPENAI_API_KEY', openai_raw.get('api_key')),
            model=self._get_env('OPENAI_MODEL', openai_raw.get('model', 'gpt-4.1-mini')),
            base_url=openai_raw.get('base_url', 'https://api.openai.com/v1'),
            temperature=openai_raw.get('temperature', 0.3),
            max_tokens=openai_raw.get('max_tokens', 3000),
            input_cost_per_mtok=openai_raw.get('input_cost_per_mtok', 0.0),
            output_cost_per_mtok=openai_raw.get('output_cost_per_mtok', 0.0),
        ))

        deepseek_raw = raw_config.get('deepseek', {})
        self.deepseek = self._validated('deepseek', DeepSeekConfig(
            api_key=self._get_secret('DEEPSEEK_API_KEY', deepseek_raw.get('api_key')),
            model=deepseek_raw.get('model', 'deepseek-chat'),
            base_url=deepseek_raw.get('base_url', 'https://api.deepseek.com/v1'),
            temperature=deepseek_raw.get('temperature', 0.2),
            max_tokens=deepseek_raw.get('max_tokens', 4000),
            input_cost_per_mtok=deepseek_raw.get('input_cost_per_mtok', 0.27),
            output_cost_per_mtok=deepseek_raw.get('output_cost_per_mtok', 1.10),
        ))

        # TRADING_INTERVAL_MS is in milliseconds; the JSON file uses seconds
        trading_raw = raw_config.get('trading', {})
        interval_ms = self._get_env('TRADING_INTERVAL_MS', None, int)
        self.trading = self._validated('trading', TradingConfig(
            interval_seconds=(
                interval_ms / 1000.0 if interval_ms is not None
                else float(trading_raw.get('interval_seconds', 60))
            ),
            symbols=list(trading_raw.get('symbols') or DEFAULT_SYMBOLS),
            max_position_size=self._get_env('MAX_POSITION_SIZE', trading_raw.get('max_position_size', 0.1), float),
            risk_per_trade=self._get_env('RISK_PER_TRADE', trading_raw.get('risk_per_trade', 0.02), float),
            dry_run=bool(trading_raw.get('dry_run', False)),
        ))

        store_raw = raw_config.get('store', {})
        self.store = self._validated('store', StoreConfig(
            path=store_raw.get('path', 'data/vector_store/strategies.jsonl'),
            top_k=store_raw.get('top_k', 5),
        ))

        server_raw = raw_config.get('server', {})
        self.server = self._validated('server', ServerConfig(
            host=server_raw.get('host', '0.0.0.0'),
            port=self._get_env('PORT', server_raw.get('port', 3000), int),
        ))

        logging_raw = raw_config.get('logging', {})
        self.logging = self._validated('logging', LoggingConfig(
            level=logging_raw.get('level', 'INFO'),
            log_dir=logging_raw.get('log_dir', 'logs'),
        ))

        logger.info(f"✅ Configuration loaded and validated from {self.config_path or 'environment'}")

    # ========================================================================
    # CONVENIENCE PROPERTIES
    # ========================================================================

    @property
    def is_dry_run(self) -> bool:
        return self.trading.dry_run

    @property
    def has_exchange_credentials(self) -> bool:
        return bool(self.exchange.api_key and self.exchange.secret_key)

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def missing_credentials(self) -> List[str]:
        """Names of credential env vars that are not set."""
        missing = []
        if not self.exchange.api_key:
            missing.append('ROOSTOO_API_KEY')
        if not self.exchange.secret_key:
            missing.append('ROOSTOO_SECRET_KEY')
        if not self.openai.api_key:
            missing.append('OPENAI_API_KEY')
        if not self.deepseek.api_key:
            missing.append('DEEPSEEK_API_KEY')
        return missing

    def warn_missing_credentials(self) -> None:
        missing = self.missing_credentials()
        if not missing:
            return
        logger.warning("⚠️  Configuration warnings:")
        for name in missing:
            logger.warning(f"   - {name} is required")
        logger.warning("Some features may not work without proper configuration.")

    def validate_for_mode(self, mode: str) -> None:
        """
        Strict validation of the credentials a CLI mode needs.

        Args:
            mode: 'run', 'once', 'serve' or 'status'

        Raises:
            ConfigurationError: If required configuration for the mode is missing
        """
        logger.info(f"🔍 Validating configuration for mode: {mode}")

        if mode == 'status':
            return

        if not self.has_exchange_credentials:
            raise ConfigurationError(
                f"ROOSTOO_API_KEY and ROOSTOO_SECRET_KEY are required for {mode} mode", 'exchange'
            )

        if mode in ('run', 'once'):
            if not self.deepseek.api_key:
                raise ConfigurationError(f"DEEPSEEK_API_KEY is required for {mode} mode", 'deepseek')
            if not self.openai.api_key:
                raise ConfigurationError(f"OPENAI_API_KEY is required for {mode} mode", 'openai')

    def log_config_summary(self) -> None:
        """Log a summary of the loaded configuration"""
        logger.info("=" * 80)
        logger.info("📋 CONFIGURATION SUMMARY")
        logger.info("=" * 80)
        logger.info(f"🏦 Exchange: {self.exchange.base_url} "
                    f"(credentials {'set' if self.has_exchange_credentials else 'missing'})")
        logger.info(f"🤖 OpenAI: {self.openai.model} (key {'set' if self.openai.api_key else 'missing'})")
        logger.info(f"🤖 DeepSeek: {self.deepseek.model} (key {'set' if self.deepseek.api_key else 'missing'})")
        logger.info(f"💰 Trading: every {self.trading.interval_seconds:g}s on {', '.join(self.trading.symbols)} "
                    f"| {'🏁 DRY RUN' if self.is_dry_run else '💸 LIVE'}")
        logger.info(f"⚠️  Risk: max position {self.trading.max_position_size:.1%}, "
                    f"risk per trade {self.trading.risk_per_trade:.1%}")
        logger.info(f"📚 Strategy store: {self.store.path} (top {self.store.top_k})")
        logger.info("=" * 80)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary with secrets redacted"""
        return {
            'exchange': {
                'base_url': self.exchange.base_url,
                'api_key_set': bool(self.exchange.api_key),
                'secret_key_set': bool(self.exchange.secret_key),
            },
            'openai': {
                'model': self.openai.model,
                'base_url': self.openai.base_url,
                'api_key_set': bool(self.openai.api_key),
            },
            'deepseek': {
                'model': self.deepseek.model,
                'base_url': self.deepseek.base_url,
                'api_key_set': bool(self.deepseek.api_key),
            },
            'trading': {
                'interval_seconds': self.trading.interval_seconds,
                'symbols': list(self.trading.symbols),
                'max_position_size': self.trading.max_position_size,
                'risk_per_trade': self.trading.risk_per_trade,
                'dry_run': self.trading.dry_run,
            },
            'store': {'path': self.store.path, 'top_k': self.store.top_k},
            'server': {'host': self.server.host, 'port': self.server.port},
            'logging': {'level': self.logging.level, 'log_dir': self.logging.log_dir},
        }
