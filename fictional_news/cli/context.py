"""Shared CLI state: global options and configuration loading."""
from pathlib import Path
from typing import Any, Dict, Optional

from ..lib.config_loader import ConfigLoader
from ..lib.log_config import setup_logging
from ..models.config import ConfigKey, validate_config_value

# Global options set by the main callback; None means "use configuration"
global_config: Dict[str, Any] = {
    "config_file": None,
    "log_level": None,
    "log_file": None,
    "backend": None,
}


async def load_cli_config(config_file: Optional[Path] = None) -> Dict[str, str]:
    """Load configuration and apply command-line overrides."""
    config_loader = ConfigLoader()
    config = await config_loader.load_config(
        config_file=config_file or global_config["config_file"],
        use_defaults=True,
        use_environment=True,
    )

    backend = global_config.get("backend")
    if backend:
        validate_config_value(ConfigKey.STORAGE_BACKEND, backend)
        config[ConfigKey.STORAGE_BACKEND] = backend.lower()

    setup_logging(
        global_config.get("log_level") or config[ConfigKey.LOG_LEVEL],
        global_config.get("log_file") or config[ConfigKey.LOG_FILE] or None,
    )
    return config
