"""Configuration management for the autoconnect system."""

import os
import platform
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


class AutomationConfig(BaseModel):
    """Settings for a single automation run."""
    linkedin_username: str = ""
    linkedin_password: str = ""
    min_mutual_connections: int = 0
    max_connections: int = 100
    headless: bool = True
    timeout_ms: int = 30000

    # Pacing between connection actions, in seconds
    min_action_delay: float = 5.0

    # Step budgets
    login_timeout: float = 15.0
    settle_delay: float = 2.0
    max_scroll_attempts: int = 5
    scroll_stable_rounds: int = 2
    scroll_amount: Optional[int] = None
    login_attempts: int = Field(default=3, ge=1)
    navigation_attempts: int = Field(default=2, ge=1)
    scan_attempts: int = Field(default=2, ge=1)
    retry_backoff: float = 3.0
    retry_backoff_max: float = 30.0

    def validate_settings(self) -> List[str]:
        """
        Check the run settings for problems that would make a run pointless
        or unsafe.

        Returns:
            List of human-readable errors (empty when the config is usable)
        """
        errors = []

        if not self.linkedin_username:
            errors.append("LINKEDIN_USERNAME environment variable is required")
        if not self.linkedin_password:
            errors.append("LINKEDIN_PASSWORD environment variable is required")

        if self.min_mutual_connections < 0:
            errors.append("MIN_MUTUAL_CONNECTIONS must be a valid non-negative number")
        if self.max_connections <= 0:
            errors.append("MAX_CONNECTIONS must be a valid positive number")
        if self.timeout_ms <= 0:
            errors.append("TIMEOUT must be a valid positive number (in milliseconds)")
        if self.min_action_delay < 0:
            errors.append("MIN_ACTION_DELAY must not be negative")

        if self.max_connections > 1000:
            errors.append("MAX_CONNECTIONS should not exceed 1000 for safety reasons")
        if self.min_mutual_connections > 500:
            errors.append("MIN_MUTUAL_CONNECTIONS seems unreasonably high (>500)")

        return errors

    def redacted(self) -> Dict[str, Any]:
        """Dump the config with the password hidden."""
        data = self.model_dump()
        if data.get("linkedin_password"):
            data["linkedin_password"] = "********"
        return data


class BrowserOptions(BaseModel):
    """How the browser session is launched."""
    browser_type: str = "chromium"
    headless: bool = True
    timeout_ms: int = 30000
    user_data_dir: Optional[str] = None
    use_existing_profile: bool = False
    chrome_executable_path: Optional[str] = None
    chrome_user_data_dir: Optional[str] = None
    viewport_width: int = 1280
    viewport_height: int = 720


class Config:
    """Main configuration class."""

    def __init__(self):
        self.root_dir = Path(__file__).parent.parent.parent.parent
        self.config_dir = Path(os.getenv("AUTOCONNECT_CONFIG_DIR", str(self.root_dir / "config")))
        self.artifacts_dir = Path(os.getenv("ARTIFACTS_DIR", str(self.root_dir / "artifacts")))

        # Credentials
        self.linkedin_username = os.getenv("LINKEDIN_USERNAME", "")
        self.linkedin_password = os.getenv("LINKEDIN_PASSWORD", "")

        # Run criteria
        self.min_mutual_connections = _env_int("MIN_MUTUAL_CONNECTIONS", 0)
        self.max_connections = _env_int("MAX_CONNECTIONS", 100)
        self.timeout_ms = _env_int("TIMEOUT", 30000)
        self.min_action_delay = _env_float("MIN_ACTION_DELAY", 5.0)

        # General Settings
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_buffer_size = _env_int("LOG_BUFFER_SIZE", 1000)
        self.headless = _env_bool("HEADLESS", True)
        self.dashboard_host = os.getenv("DASHBOARD_HOST", "127.0.0.1")
        self.dashboard_port = _env_int("DASHBOARD_PORT", 8000)

        # Browser profile
        self.user_data_dir = os.getenv("USER_DATA_DIR") or str(self.root_dir / "browser-profile")
        self.use_existing_profile = _env_bool("USE_EXISTING_PROFILE", False)
        self.chrome_executable_path = os.getenv("CHROME_EXECUTABLE_PATH") or None
        self.chrome_user_data_dir = os.getenv("CHROME_USER_DATA_DIR") or None
        default_browser = "chromium"
        if platform.system().lower() == "darwin" and not self.use_existing_profile:
            default_browser = "webkit"
        self.browser_type = os.getenv("PLAYWRIGHT_BROWSER", default_browser)

        # Optional YAML overrides for run settings
        self.overrides: Dict[str, Any] = self._load_overrides()

    def _load_overrides(self) -> Dict[str, Any]:
        """Load run-setting overrides from YAML."""
        overrides_file = self.config_dir / "automation.yaml"
        if not overrides_file.exists():
            return {}

        with open(overrides_file, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            print(f"Warning: Ignoring {overrides_file}, expected a mapping")
            return {}

        known = set(AutomationConfig.model_fields)
        unknown = [key for key in data if key not in known]
        if unknown:
            print(f"Warning: Unknown keys in {overrides_file}: {', '.join(unknown)}")

        return {key: value for key, value in data.items() if key in known}

    def automation_config(self, **overrides: Any) -> AutomationConfig:
        """
        Build the run configuration.

        Precedence: explicit keyword overrides, then environment, then
        config/automation.yaml, then model defaults.
        """
        values: Dict[str, Any] = dict(self.overrides)
        values.update({
            "linkedin_username": self.linkedin_username,
            "linkedin_password": self.linkedin_password,
            "headless": self.headless,
            "timeout_ms": self.timeout_ms,
        })
        for env_name, field_name, value in (
            ("MIN_MUTUAL_CONNECTIONS", "min_mutual_connections", self.min_mutual_connections),
            ("MAX_CONNECTIONS", "max_connections", self.max_connections),
            ("MIN_ACTION_DELAY", "min_action_delay", self.min_action_delay),
        ):
            if os.getenv(env_name) is not None or field_name not in values:
                values[field_name] = value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return AutomationConfig(**values)

    def browser_options(self, headless: Optional[bool] = None) -> BrowserOptions:
        """Get launch options for the Playwright browser."""
        return BrowserOptions(
            browser_type=self.browser_type,
            headless=self.headless if headless is None else headless,
            timeout_ms=self.timeout_ms,
            user_data_dir=self.user_data_dir,
            use_existing_profile=self.use_existing_profile,
            chrome_executable_path=self.chrome_executable_path,
            chrome_user_data_dir=self.chrome_user_data_dir,
        )


# Global config instance
config = Config()
