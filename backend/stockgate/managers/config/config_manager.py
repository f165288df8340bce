"""
Configuration management for the security gate.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from stockgate.managers.config.config_models import GateSettings, SecurityPolicy

logger = logging.getLogger(__name__)

# Policy-file keys that may override the environment-derived policy.
POLICY_FILE_KEYS = (
    "denied_identities",
    "allowed_origins",
    "allowed_methods",
    "auth_required_methods",
    "sql_injection_patterns",
    "xss_patterns",
    "malicious_patterns",
    "suspicious_user_agents",
    "sensitive_path_prefixes",
)

_PATTERN_KEYS = ("sql_injection_patterns", "xss_patterns", "malicious_patterns")


class ConfigManager:
    """Loads gate settings and the immutable security policy once per process."""

    def __init__(self, backend_root: Optional[Path] = None):
        self._backend_root = backend_root or Path(__file__).resolve().parents[3]
        self._app_settings: Optional[GateSettings] = None
        self._security_policy: Optional[SecurityPolicy] = None

        # Load environment variables from .env file
        dotenv_path = self._backend_root.parent / ".env"
        load_dotenv(dotenv_path=dotenv_path)
        logger.info(f"Loading .env from {dotenv_path.resolve()}")

    def _search_paths(self, file_name: str) -> List[Path]:
        """Generate common search paths for a configuration file."""
        candidates: List[Path] = [
            Path("config/overrides") / file_name,
            Path("config/defaults") / file_name,
            Path(file_name),
            self._backend_root.parent / "config" / file_name,
        ]

        return candidates

    def _load_policy_overrides(self, file_paths: List[Path]) -> Dict[str, Any]:
        """Read the first policy file found and keep only recognised, valid keys."""
        for path in file_paths:
            if not path.exists():
                continue

            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Policy file parsing error in {path}: {e}")
                continue

            if not isinstance(data, dict):
                logger.error(f"Unexpected data format in policy file {path}: {type(data)}")
                continue

            logger.info(f"Loaded security policy overrides from {path.absolute()}")
            return self._clean_overrides(data, path)

        return {}

    def _clean_overrides(self, data: Dict[str, Any], path: Path) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in POLICY_FILE_KEYS:
                logger.warning(f"Ignoring unknown policy key '{key}' in {path}")
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                logger.error(f"Policy key '{key}' in {path} must be a list of strings")
                continue
            if key in _PATTERN_KEYS and not self._patterns_compile(key, value, path):
                continue
            if key == "suspicious_user_agents":
                value = [agent.lower() for agent in value]
            elif key in ("allowed_methods", "auth_required_methods"):
                value = [method.upper() for method in value]
            elif key == "allowed_origins":
                value = [origin.rstrip("/") for origin in value]
            overrides[key] = value
        return overrides

    @staticmethod
    def _patterns_compile(key: str, patterns: List[str], path: Path) -> bool:
        try:
            for pattern in patterns:
                re.compile(pattern)
        except re.error as e:
            logger.error(f"Invalid pattern for '{key}' in {path}: {e}")
            return False
        return True

    @property
    def app_settings(self) -> GateSettings:
        """Get gate settings (cached)."""
        if self._app_settings is None:
            self._app_settings = GateSettings()
            logger.info("Gate settings loaded successfully")
        return self._app_settings

    @property
    def security_policy(self) -> SecurityPolicy:
        """Get the security policy (cached)."""
        if self._security_policy is None:
            settings = self.app_settings
            overrides = self._load_policy_overrides(self._search_paths(settings.policy_file))
            try:
                self._security_policy = SecurityPolicy.from_settings(settings, overrides)
            except ValidationError as e:
                logger.error(f"Policy file overrides rejected, using environment only: {e}")
                self._security_policy = SecurityPolicy.from_settings(settings)
            logger.info(
                f"Security policy loaded: max_requests={self._security_policy.max_requests} "
                f"window_ms={self._security_policy.window_ms} "
                f"denied={len(self._security_policy.denied_identities)} "
                f"origins={len(self._security_policy.allowed_origins)}"
            )
        return self._security_policy

    def reload(self) -> None:
        """Drop cached settings so the next access re-reads the environment."""
        self._app_settings = None
        self._security_policy = None


# Global configuration manager instance
config_manager = ConfigManager()
