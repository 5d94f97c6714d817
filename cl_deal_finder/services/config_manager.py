"""
Configuration management for the Craigslist Deal Finder.
"""

import json
import os
from typing import Any, Dict, Optional

import yaml

from ..models.config import (
    MISSING_ENV_PREFIX,
    Configuration,
    DatabaseConfig,
    EvaluatorConfig,
    MarketplaceConfig,
    NotifierConfig,
    ScanConfig,
    SystemConfig,
)

GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
RESEND_API_KEY_ENV = "RESEND_API_KEY"
DATABASE_URL_ENV = "DATABASE_URL"


def missing_env_placeholder(var_name: str) -> str:
    return f"{MISSING_ENV_PREFIX}{var_name}__"


class ConfigurationManager:
    """Manages loading, validation, and reloading of system configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default paths.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Configuration] = None
        self._last_modified: Optional[float] = None

    def _find_config_file(self) -> str:
        """Find the configuration file in standard locations."""
        possible_paths = [
            "config/config.yaml",
            "config/config.yml",
            "config/config.json",
            "config.yaml",
            "config.yml",
            "config.json",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        if os.path.exists("config/config.example.yaml"):
            raise ValueError(
                "No configuration file found. Please copy 'config/config.example.yaml' "
                "to 'config/config.yaml' and customize it for your needs."
            )

        raise ValueError(
            "No configuration file found. Please create a configuration file "
            "at one of these locations: " + ", ".join(possible_paths)
        )

    def _read_raw(self, config_path: str) -> Dict[str, Any]:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.endswith(".json"):
                raw_config = json.load(f)
            else:
                raw_config = yaml.safe_load(f)

        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ValueError("Configuration root must be a mapping")
        return raw_config

    def load_config(self) -> Configuration:
        """
        Load configuration from file.

        Returns:
            Configuration object with validated settings.

        Raises:
            ValueError: If configuration is invalid or file cannot be read.
            FileNotFoundError: If configuration file doesn't exist.
        """
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(self.config_path))
            config = self._parse_config(raw_config)
            config.validate()
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}") from e
        except (OSError, TypeError, ValueError) as e:
            raise ValueError(f"Error loading configuration: {e}") from e

        self._config = config
        self._last_modified = os.path.getmtime(self.config_path)
        return config

    def _expand_env_vars(self, obj: Any) -> Any:
        """
        Recursively expand ``${VAR_NAME}`` values.

        Unset variables become a missing-variable placeholder rather than an
        error, so a deployment without an optional credential (such as the
        email key) still loads and the affected feature reports itself as
        unconfigured.
        """
        if isinstance(obj, dict):
            return {key: self._expand_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            if obj.startswith("${") and obj.endswith("}"):
                var_name = obj[2:-1]
                env_value = os.getenv(var_name)
                if env_value is None:
                    return missing_env_placeholder(var_name)
                return env_value
            return obj
        else:
            return obj

    def _parse_config(self, raw_config: Dict[str, Any]) -> Configuration:
        """Parse raw configuration dictionary into Configuration object."""
        database_data = raw_config.get("database") or {}
        database = DatabaseConfig(
            url=database_data.get("url")
            or os.getenv(DATABASE_URL_ENV)
            or DatabaseConfig.url,
            echo=bool(database_data.get("echo", False)),
        )

        marketplace_data = raw_config.get("marketplace") or {}
        marketplace_defaults = MarketplaceConfig()
        marketplace = MarketplaceConfig(
            **{
                key: marketplace_data.get(key, getattr(marketplace_defaults, key))
                for key in (
                    "site",
                    "default_region",
                    "default_radius",
                    "headless",
                    "max_detail_fetches",
                    "navigation_timeout",
                    "results_timeout",
                    "detail_timeout",
                    "body_timeout",
                    "user_agent",
                    "viewport_width",
                    "viewport_height",
                    "browser_args",
                )
            }
        )

        evaluator_data = raw_config.get("evaluator") or {}
        evaluator = EvaluatorConfig(
            provider=evaluator_data.get("provider", "google"),
            api_key=evaluator_data.get("api_key", os.getenv(GEMINI_API_KEY_ENV)),
            model=evaluator_data.get("model", EvaluatorConfig.model),
            max_images=evaluator_data.get("max_images", 2),
            timeout=evaluator_data.get("timeout", 60.0),
            prompt_template=evaluator_data.get("prompt_template"),
        )

        notifier_data = raw_config.get("notifier") or {}
        notifier = NotifierConfig(
            provider=notifier_data.get("provider", "resend"),
            api_key=notifier_data.get("api_key", os.getenv(RESEND_API_KEY_ENV)),
            from_address=notifier_data.get("from_address", NotifierConfig.from_address),
            max_retries=notifier_data.get("max_retries", 2),
            retry_delay=notifier_data.get("retry_delay", 1.0),
        )

        scan_data = raw_config.get("scan") or {}
        scan = ScanConfig(
            max_results=scan_data.get("max_results", 15),
            detail_delay=scan_data.get("detail_delay", 0.5),
            evaluation_delay=scan_data.get("evaluation_delay", 1.5),
            search_delay=scan_data.get("search_delay", 3.0),
        )

        system_data = raw_config.get("system") or {}
        system = SystemConfig(
            log_level=str(system_data.get("log_level", "INFO")).upper(),
            log_dir=system_data.get("log_dir", "logs"),
            polling_interval=system_data.get("polling_interval", 3600),
        )

        return Configuration(
            database=database,
            marketplace=marketplace,
            evaluator=evaluator,
            notifier=notifier,
            scan=scan,
            system=system,
        )

    def get_config(self) -> Configuration:
        """
        Get current configuration, loading if necessary.

        Returns:
            Current configuration object.
        """
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_if_changed(self) -> bool:
        """
        Reload configuration if file has been modified.

        Returns:
            True if configuration was reloaded, False otherwise.
        """
        if not os.path.exists(self.config_path):
            return False

        current_modified = os.path.getmtime(self.config_path)

        if self._last_modified is None or current_modified > self._last_modified:
            try:
                self.load_config()
                return True
            except ValueError:
                # keep the current config
                return False

        return False

    def validate_config_file(self, config_path: str) -> bool:
        """
        Validate a configuration file without loading it.

        Args:
            config_path: Path to configuration file to validate.

        Returns:
            True if configuration is valid.

        Raises:
            ValueError: If configuration is invalid with detailed error message.
        """
        if not os.path.exists(config_path):
            raise ValueError(f"Configuration file not found: {config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(config_path))
            self._parse_config(raw_config).validate()
            return True
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

