"""Configuration loader implementation.

This module implements configuration loading from defaults, config files
and environment variables.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..models.config import DEFAULT_CONFIG, validate_config_value

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Loads configuration from defaults, a file and the environment."""

    def __init__(self, env_prefix: str = "FICTIONAL_NEWS_"):
        self.env_prefix = env_prefix
        self._cached_config: Optional[Dict[str, str]] = None
        self._config_sources: List[str] = []

    async def load_config(
        self,
        config_file: Optional[Path] = None,
        use_environment: bool = True,
        use_defaults: bool = True,
    ) -> Dict[str, str]:
        """
        Load configuration, merging sources by priority.

        Priority: environment > config file > defaults

        Args:
            config_file: configuration file path (.json or KEY=VALUE lines)
            use_environment: read FICTIONAL_NEWS_* variables
            use_defaults: start from the built-in defaults

        Returns:
            Dict[str, str]: merged configuration

        Raises:
            ValueError: one or more values failed validation
        """
        config: Dict[str, str] = {}
        self._config_sources = []

        # 1. Defaults
        if use_defaults:
            for key, value in DEFAULT_CONFIG.items():
                config[key] = str(value)
            self._config_sources.append("defaults")

        # 2. Config file
        if config_file:
            config.update(await self.load_from_file(config_file))
            self._config_sources.append(f"file:{config_file}")

        # 3. Environment (highest priority)
        if use_environment:
            config.update(await self.load_from_environment())
            self._config_sources.append("environment")

        validated_config = await self.validate_config(config)
        self._cached_config = validated_config

        logger.info(f"Configuration loaded from: {', '.join(self._config_sources)}")
        return validated_config

    async def load_from_file(self, config_file: Path) -> Dict[str, str]:
        """Load configuration from a file."""
        config: Dict[str, str] = {}

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}")
            return config

        try:
            if config_file.suffix.lower() == ".json":
                with open(config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                for key, value in data.items():
                    config[self._normalize_key(key)] = str(value)
            else:
                with open(config_file, "r", encoding="utf-8") as f:
                    for line_num, line in enumerate(f, 1):
                        line = line.strip()

                        # Skip blanks and comments
                        if not line or line.startswith("#"):
                            continue

                        if "=" not in line:
                            logger.warning(f"Invalid config line ({config_file}:{line_num}): {line}")
                            continue

                        key, value = line.split("=", 1)
                        value = value.strip()
                        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                            value = value[1:-1]

                        config[self._normalize_key(key.strip())] = value

            logger.debug(f"Loaded {len(config)} settings from {config_file}")
            return config

        except Exception as e:
            logger.error(f"Failed to load config file ({config_file}): {e}")
            raise

    async def load_from_environment(self) -> Dict[str, str]:
        """Load configuration from environment variables."""
        config = {}

        for env_key, env_value in os.environ.items():
            if env_key.startswith(self.env_prefix):
                config[self._normalize_key(env_key)] = env_value

        logger.debug(f"Loaded {len(config)} settings from environment")
        return config

    def _normalize_key(self, key: str) -> str:
        """
        Map env-style names to dotted keys.

        FICTIONAL_NEWS_STORAGE_BACKEND and STORAGE_BACKEND both become
        storage.backend; dotted keys pass through unchanged.
        """
        if "." in key:
            return key.lower()

        if key.startswith(self.env_prefix):
            key = key[len(self.env_prefix):]

        section, _, rest = key.lower().partition("_")
        return f"{section}.{rest}" if rest else section

    def _config_to_env_key(self, config_key: str) -> str:
        return f"{self.env_prefix}{config_key.upper().replace('.', '_')}"

    async def validate_config(self, config: Dict[str, str]) -> Dict[str, str]:
        """Validate configuration values, reporting every problem at once."""
        errors = []

        for key, value in config.items():
            try:
                validate_config_value(key, value)
            except ValueError as e:
                errors.append(str(e))

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(errors)
            logger.error(error_message)
            raise ValueError(error_message)

        logger.debug(f"Configuration valid: {len(config)} settings")
        return dict(config)

    def get_config_sources(self) -> List[str]:
        return self._config_sources.copy()

    def get_cached_config(self) -> Optional[Dict[str, str]]:
        return self._cached_config.copy() if self._cached_config else None

    async def export_config_to_file(self, output_file: Path, format: str = "env") -> bool:
        """Write the cached configuration as .env or JSON."""
        if not self._cached_config:
            logger.warning("No cached configuration to export")
            return False

        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)

            with open(output_file, "w", encoding="utf-8") as f:
                if format.lower() == "json":
                    json.dump(self._cached_config, f, indent=2, ensure_ascii=False)
                else:
                    f.write("# Fictional News configuration\n\n")
                    for key, value in sorted(self._cached_config.items()):
                        f.write(f"{self._config_to_env_key(key)}={value}\n")

            logger.info(f"Configuration exported to {output_file}")
            return True

        except OSError as e:
            logger.error(f"Failed to export configuration: {e}")
            return False
