import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _get_env_list(name: str, default: List[str]) -> List[str]:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


@dataclass
class Config:
    profile_url: str
    login_url: str
    alerts_url: str
    auth_url_patterns: List[str]
    cookie_jar_path: Path
    session_cookie_name: str
    request_timeout: float
    alarms_path: Path
    alarm_base_name: str
    alarm_check_interval_ms: int
    install_marker_path: Path
    timezone: Optional[str]
    enable_console: bool
    open_browser: bool
    log_level: str


DEFAULT_PROFILE_URL = "http://localhost:8000/common/accounts/user"
DEFAULT_LOGIN_URL = "http://localhost:4200"
DEFAULT_ALERTS_URL = "http://localhost:4200/alerts"
DEFAULT_AUTH_URL_PATTERNS = [
    "http://localhost:4200/common/accounts/signin",
    "http://localhost:8000/common/accounts/signin",
    "http://localhost:8000/common/accounts/user/alert-time*",
]


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    profile_url = os.getenv("PROFILE_URL", DEFAULT_PROFILE_URL)
    login_url = os.getenv("LOGIN_URL", DEFAULT_LOGIN_URL)
    alerts_url = os.getenv("ALERTS_URL", DEFAULT_ALERTS_URL)
    auth_url_patterns = _get_env_list("AUTH_URL_PATTERNS", DEFAULT_AUTH_URL_PATTERNS)
    cookie_jar_path = Path(os.getenv("COOKIE_JAR_PATH", "data/cookies.txt"))
    session_cookie_name = os.getenv("SESSION_COOKIE_NAME", "sessionid")
    request_timeout = _get_env_float("REQUEST_TIMEOUT_S", 10.0)
    alarms_path = Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json"))
    alarm_base_name = os.getenv("ALARM_BASE_NAME") or "alfred_alert_"
    alarm_check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 1000)
    install_marker_path = Path(os.getenv("INSTALL_MARKER_PATH", "data/.installed"))
    timezone = os.getenv("TIMEZONE") or None
    enable_console = _get_env_bool("ENABLE_CONSOLE", True)
    open_browser = _get_env_bool("OPEN_BROWSER", True)
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        profile_url=profile_url,
        login_url=login_url,
        alerts_url=alerts_url,
        auth_url_patterns=auth_url_patterns,
        cookie_jar_path=cookie_jar_path,
        session_cookie_name=session_cookie_name,
        request_timeout=request_timeout,
        alarms_path=alarms_path,
        alarm_base_name=alarm_base_name,
        alarm_check_interval_ms=alarm_check_interval_ms,
        install_marker_path=install_marker_path,
        timezone=timezone,
        enable_console=enable_console,
        open_browser=open_browser,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO") -> None:
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_path = logs_dir / "alfred.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
