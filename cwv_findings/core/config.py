import os
from dotenv import load_dotenv
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable

from cwv_findings.core.errors import ConfigurationError
from cwv_findings.core.thresholds import DEVICE_TYPES

load_dotenv()


class EnvConfig:
    """Small helper for reading and casting environment variables.

    Usage: EnvConfig.get('AGENT_BATCH_SIZE', cast=int, aliases=['BATCH_SIZE'])
    """

    @staticmethod
    def get(name: str, default: Any = None, cast: Optional[Callable] = None, aliases: Optional[list] = None):
        aliases = aliases or []
        for key in (name, *aliases):
            val = os.getenv(key)
            if val is not None:
                if cast is not None:
                    try:
                        return cast(val)
                    except Exception as exc:
                        raise ConfigurationError(f"Invalid value for {key}: {exc}")
                return val
        return default


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def ms_to_seconds(value: str) -> float:
    return int(value) / 1000.0


# Debug flag
DEBUG = EnvConfig.get('DEBUG', default='False', cast=lambda v: v.lower() == 'true')


@dataclass
class BaseConfig:
    """Mixin-like helper for dataclasses that load from envs and validate."""

    @classmethod
    def _env(cls, name: str, default: Any = None, cast: Optional[Callable] = None, aliases: Optional[list] = None):
        return EnvConfig.get(name, default=default, cast=cast, aliases=aliases)

    def validate(self, required: bool = True):
        """Default no-op; override in subclasses with required flag."""
        return None


@dataclass
class GatingConfig(BaseConfig):
    device_type: str = 'mobile'

    def __post_init__(self):
        # Only consult env var when using the dataclass default
        if self.device_type == GatingConfig.device_type:
            self.device_type = self._env('CWV_DEVICE_TYPE', default=self.device_type, aliases=['DEVICE_TYPE'])

    def validate(self, required: bool = True) -> None:
        if self.device_type not in DEVICE_TYPES:
            raise ConfigurationError(f'device_type must be one of {list(DEVICE_TYPES)}')


@dataclass
class SchedulerConfig(BaseConfig):
    batch_size: int = 3
    batch_delay_seconds: float = 2.0
    max_attempts: int = 3
    base_retry_delay_seconds: float = 5.0

    def __post_init__(self):
        batch_size = self._env('AGENT_BATCH_SIZE', default=None, cast=int)
        if batch_size is not None and self.batch_size == SchedulerConfig.batch_size:
            self.batch_size = batch_size
        # Delays are configured in milliseconds
        delay = self._env('AGENT_BATCH_DELAY', default=None, cast=ms_to_seconds)
        if delay is not None and self.batch_delay_seconds == SchedulerConfig.batch_delay_seconds:
            self.batch_delay_seconds = delay
        attempts = self._env('AGENT_MAX_RETRIES', default=None, cast=int)
        if attempts is not None and self.max_attempts == SchedulerConfig.max_attempts:
            self.max_attempts = attempts
        base = self._env('AGENT_RETRY_BASE_DELAY', default=None, cast=ms_to_seconds)
        if base is not None and self.base_retry_delay_seconds == SchedulerConfig.base_retry_delay_seconds:
            self.base_retry_delay_seconds = base

    def validate(self, required: bool = True) -> None:
        if self.batch_size < 1:
            raise ConfigurationError('batch_size must be >= 1')
        if self.max_attempts < 1:
            raise ConfigurationError('max_attempts must be >= 1')
        if self.batch_delay_seconds < 0 or self.base_retry_delay_seconds < 0:
            raise ConfigurationError('delays must be >= 0')


@dataclass
class GraphConfig(BaseConfig):
    index_pairs: bool = True
    max_critical_paths: int = 1000

    def __post_init__(self):
        index_pairs = self._env('GRAPH_INDEX_PAIRS', default=None, cast=parse_bool)
        if index_pairs is not None and self.index_pairs == GraphConfig.index_pairs:
            self.index_pairs = index_pairs
        max_paths = self._env('GRAPH_MAX_CRITICAL_PATHS', default=None, cast=int)
        if max_paths is not None and self.max_critical_paths == GraphConfig.max_critical_paths:
            self.max_critical_paths = max_paths

    def validate(self, required: bool = True) -> None:
        if self.max_critical_paths < 1:
            raise ConfigurationError('max_critical_paths must be >= 1')


@dataclass
class ValidationConfig(BaseConfig):
    blocking_mode: bool = True
    adjust_mode: bool = True
    strict_mode: bool = False

    def __post_init__(self):
        blocking = self._env('VALIDATION_BLOCKING_MODE', default=None, cast=parse_bool)
        if blocking is not None and self.blocking_mode == ValidationConfig.blocking_mode:
            self.blocking_mode = blocking
        adjust = self._env('VALIDATION_ADJUST_MODE', default=None, cast=parse_bool)
        if adjust is not None and self.adjust_mode == ValidationConfig.adjust_mode:
            self.adjust_mode = adjust
        strict = self._env('VALIDATION_STRICT_MODE', default=None, cast=parse_bool)
        if strict is not None and self.strict_mode == ValidationConfig.strict_mode:
            self.strict_mode = strict


@dataclass
class ClaudeConfig(BaseConfig):
    api_key: Optional[str] = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4000
    temperature: float = 0.0

    def __post_init__(self):
        self.api_key = self.api_key or self._env('ANTHROPIC_API_KEY', aliases=['CLAUDE_API_KEY'])
        self.model = self._env('CLAUDE_MODEL', default=self.model)
        tokens = self._env('CLAUDE_MAX_TOKENS', default=None, cast=int)
        if tokens is not None:
            self.max_tokens = tokens
        temp = self._env('CLAUDE_TEMPERATURE', default=None, cast=float)
        if temp is not None:
            self.temperature = temp

    def validate(self, required: bool = True) -> None:
        if required and not self.api_key:
            raise ConfigurationError('ANTHROPIC_API_KEY not set. Set via environment or ClaudeConfig.api_key')
        if self.max_tokens < 100:
            raise ConfigurationError('max_tokens must be >= 100')
        if not 0 <= self.temperature <= 1:
            raise ConfigurationError('temperature must be between 0 and 1')


class AppConfig:
    """Central application configuration container.

    Access sub-configs as attributes (e.g., `AppConfig.scheduler`).
    Use `AppConfig.from_env()` for a validated instance reflecting the
    current environment.
    """

    gating: GatingConfig = GatingConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    graph: GraphConfig = GraphConfig()
    validation: ValidationConfig = ValidationConfig()
    claude: ClaudeConfig = ClaudeConfig()

    def __init__(self):
        # Fresh instances so a from_env() call reflects the current environment
        self.gating = GatingConfig()
        self.scheduler = SchedulerConfig()
        self.graph = GraphConfig()
        self.validation = ValidationConfig()
        self.claude = ClaudeConfig()

    def validate_all(self, strict: bool = False) -> None:
        self.gating.validate()
        self.scheduler.validate()
        self.graph.validate()
        self.validation.validate()
        self.claude.validate(required=strict)

    @staticmethod
    def check_availability() -> Dict[str, Dict[str, Any]]:
        """Return availability map for each config.

        For each named sub-config return a dict with keys:
        - available: bool
        - reason: Optional[str] explaining failure when available is False
        """
        results: Dict[str, Dict[str, Any]] = {}
        configs = {
            'gating': GatingConfig(),
            'scheduler': SchedulerConfig(),
            'graph': GraphConfig(),
            'validation': ValidationConfig(),
            'claude': ClaudeConfig(),
        }
        for name, cfg in configs.items():
            try:
                cfg.validate(required=True)
                results[name] = {'available': True, 'reason': None}
            except ConfigurationError as e:
                results[name] = {'available': False, 'reason': str(e)}
        return results

    @staticmethod
    def from_env(strict: bool = False) -> 'AppConfig':
        config = AppConfig()
        config.validate_all(strict=strict)
        return config
