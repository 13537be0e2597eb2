"""Configuration management for FamilySync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .assistant import MAX_AGENT_TURNS
from .core.dates import SUNDAY, parse_weekday
from .core.views import ViewSettings

logger = logging.getLogger(__name__)

FAMILYSYNC_HOME = Path(os.environ.get("FAMILYSYNC_HOME", Path.home() / "familysync"))
CONFIG_FILE = FAMILYSYNC_HOME / "config" / "familysync.conf"
DATA_DIR = FAMILYSYNC_HOME / "data"


@dataclass
class Config:
    """FamilySync configuration."""

    state_file: str = ""
    timezone: str = "America/Toronto"
    week_starts_on: str = "Sunday"
    agenda_task_days: int = 3
    agenda_event_days: int = 7
    # Assistant settings
    llm_provider: str = "claude"
    llm_model: str = "gemini-2.5-flash"
    gemini_api_key: str = ""
    agent_max_turns: int = MAX_AGENT_TURNS
    # Telegram bot settings
    telegram_bot_token: str = ""
    telegram_allowed_users: list[int] = field(default_factory=list)
    telegram_digest_time: str = "07:00"

    @property
    def state_path(self) -> Path:
        if self.state_file:
            return Path(self.state_file).expanduser()
        return DATA_DIR / "state.json"

    @property
    def tz(self) -> ZoneInfo | None:
        """Configured zone, or None (system local) if the name is unknown."""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown TIMEZONE {self.timezone!r}, using system local time")
            return None

    @property
    def week_start(self) -> int:
        return parse_weekday(self.week_starts_on, SUNDAY)

    def view_settings(self) -> ViewSettings:
        return ViewSettings(
            week_starts_on=self.week_start,
            agenda_task_days=self.agenda_task_days,
            agenda_event_days=self.agenda_event_days,
        )


def _int(key: str, value: str, default: int, low: int = 1, high: int | None = None) -> int:
    try:
        number = int(value)
    except ValueError:
        logger.warning(f"Invalid {key.upper()} value {value!r}, using {default}")
        return default
    if number < low:
        logger.warning(f"{key.upper()} raised to {low}")
        return low
    if high is not None and number > high:
        logger.warning(f"{key.upper()} capped at {high}")
        return high
    return number


def parse_config(text: str) -> Config:
    """Parse familysync.conf contents into a Config."""
    config = Config()

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()

        # Handle quoted values with inline comments: "value" # comment
        if value[:1] in ('"', "'"):
            end_quote = value.find(value[0], 1)
            value = value[1:end_quote] if end_quote != -1 else value[1:]
        elif "#" in value:
            value = value.split("#")[0].strip()

        match key:
            case "state_file":
                config.state_file = value
            case "timezone":
                config.timezone = value
            case "week_starts_on":
                config.week_starts_on = value
            case "agenda_task_days":
                config.agenda_task_days = _int(key, value, 3)
            case "agenda_event_days":
                config.agenda_event_days = _int(key, value, 7)
            case "llm_provider":
                config.llm_provider = value.lower()
            case "llm_model":
                config.llm_model = value
            case "gemini_api_key":
                config.gemini_api_key = value
            case "agent_max_turns":
                config.agent_max_turns = _int(key, value, MAX_AGENT_TURNS, high=MAX_AGENT_TURNS)
            case "telegram_bot_token":
                config.telegram_bot_token = value
            case "telegram_allowed_users":
                users = []
                for u in value.split(","):
                    u = u.strip()
                    if not u:
                        continue
                    try:
                        users.append(int(u))
                    except ValueError:
                        logger.warning(f"Ignoring invalid Telegram user id {u!r}")
                config.telegram_allowed_users = users
            case "telegram_digest_time":
                config.telegram_digest_time = value

    return config


def load_config() -> Config:
    """Load configuration from familysync.conf file."""
    if not CONFIG_FILE.exists():
        return Config()
    return parse_config(CONFIG_FILE.read_text())
