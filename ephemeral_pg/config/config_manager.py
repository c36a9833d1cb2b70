"""
Configuration Manager for ephemeral test databases.

Handles server endpoint settings, migration source location, pool sizing,
round-trip timeouts and orphan reaping thresholds. Values come from the
process environment first and from environment files second.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigManager:
    """
    Central configuration for ephemeral database handles.

    Provides:
    - PostgreSQL endpoint and credentials from environment variables
    - Environment file loading with precedence
    - Pool size, timeout and naming defaults
    - Configuration validation
    """

    DEFAULTS = {
        'POSTGRES_HOST': 'localhost',
        'POSTGRES_PORT': '5432',
        'POSTGRES_USER': 'postgres',
        'POSTGRES_PASSWORD': '',
        'MIGRATIONS_DIR': './migrations',
        'TEST_DB_PREFIX': 'test_',
        'TEST_DB_MAX_CONNECTIONS': '5',
        'TEST_DB_CONNECT_TIMEOUT': '10',
        'TEST_DB_COMMAND_TIMEOUT': '60',
        'TEST_DB_ORPHAN_MAX_AGE': '3600',
    }

    PREFIX_PATTERN = re.compile(r'^[a-z0-9_]+$')

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize ConfigManager.

        Args:
            config_dir: Directory containing environment files (defaults to cwd)

        Raises:
            ConfigValidationError: If any configured value is invalid
        """
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self._env_vars: Dict[str, str] = {}

        self._load_env_files()
        self._validate()

    def _load_env_files(self):
        """Load environment files with precedence: .env.prod > .env.staging > .env.dev > .env"""
        env = os.getenv('ENV', 'dev')

        env_files = ['.env']
        if env in ['dev', 'staging', 'prod']:
            env_files.append('.env.dev')
        if env in ['staging', 'prod']:
            env_files.append('.env.staging')
        if env == 'prod':
            env_files.append('.env.prod')

        for env_file in env_files:
            env_path = self.config_dir / env_file
            if env_path.exists():
                self._load_env_file(env_path)

    def _load_env_file(self, env_path: Path):
        """Load a single environment file into our internal env_vars dict."""
        try:
            with open(env_path, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        self._env_vars[key.strip()] = value.strip()
        except OSError as e:
            logger.warning(f"Could not read environment file {env_path}: {e}")

    def get(self, key: str) -> str:
        """Get a raw setting: os.environ, then env files, then defaults."""
        value = os.getenv(key)
        if value is None:
            value = self._env_vars.get(key)
        if value is None:
            value = self.DEFAULTS.get(key)
        if value is None:
            raise ConfigValidationError(f"Unknown configuration key: {key}")
        return value

    def _get_int(self, key: str, minimum: int) -> int:
        raw = self.get(key)
        try:
            value = int(raw)
        except ValueError:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be an integer")
        if value < minimum:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be at least {minimum}")
        return value

    def _get_seconds(self, key: str) -> float:
        raw = self.get(key)
        try:
            value = float(raw)
        except ValueError:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be a number of seconds")
        if value <= 0:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be greater than zero")
        return value

    def _validate(self):
        """Validate every setting eagerly so errors surface at construction."""
        port = self._get_int('POSTGRES_PORT', 1)
        if port > 65535:
            raise ConfigValidationError(
                f"Invalid POSTGRES_PORT: '{port}' - port must be between 1 and 65535"
            )
        if not self.postgres_user:
            raise ConfigValidationError("POSTGRES_USER must not be empty")
        if not self.PREFIX_PATTERN.match(self.database_prefix):
            raise ConfigValidationError(
                f"Invalid TEST_DB_PREFIX: '{self.database_prefix}' - "
                "use lowercase letters, digits and underscores only"
            )
        self._get_int('TEST_DB_MAX_CONNECTIONS', 1)
        self._get_int('TEST_DB_ORPHAN_MAX_AGE', 0)
        self._get_seconds('TEST_DB_CONNECT_TIMEOUT')
        self._get_seconds('TEST_DB_COMMAND_TIMEOUT')

    @property
    def postgres_host(self) -> str:
        """Get PostgreSQL host."""
        return self.get('POSTGRES_HOST')

    @property
    def postgres_port(self) -> int:
        """Get PostgreSQL port."""
        return int(self.get('POSTGRES_PORT'))

    @property
    def postgres_user(self) -> str:
        """Get PostgreSQL user."""
        return self.get('POSTGRES_USER')

    @property
    def postgres_password(self) -> str:
        """Get PostgreSQL password (may be empty)."""
        return self.get('POSTGRES_PASSWORD')

    @property
    def migrations_dir(self) -> Path:
        """Get the migration source directory, resolved against config_dir."""
        path = Path(self.get('MIGRATIONS_DIR'))
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    @property
    def database_prefix(self) -> str:
        return self.get('TEST_DB_PREFIX')

    @property
    def max_connections(self) -> int:
        return int(self.get('TEST_DB_MAX_CONNECTIONS'))

    @property
    def connect_timeout(self) -> float:
        return float(self.get('TEST_DB_CONNECT_TIMEOUT'))

    @property
    def command_timeout(self) -> float:
        return float(self.get('TEST_DB_COMMAND_TIMEOUT'))

    @property
    def orphan_max_age(self) -> int:
        """Get the age in seconds after which an idle ephemeral database is reaped."""
        return int(self.get('TEST_DB_ORPHAN_MAX_AGE'))
