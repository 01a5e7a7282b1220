# src/sd_relay/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole relay.
- No secrets required at import time (the app key is validated at startup).
- Environment-specific overrides via .env.<SDRELAY_ENV> (e.g. .env.product).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "SDRELAY"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_files() -> None:
    """Load .env.<env> first (if SDRELAY_ENV is set), then .env. Existing env vars win."""
    from dotenv import load_dotenv

    env_name = (os.getenv(_k("ENV")) or "").strip()
    if env_name:
        load_dotenv(f".env.{env_name}", override=False)
    load_dotenv(override=False)


_load_dotenv_files()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _join_host(host: str, port: str, path: str) -> str:
    # Leading "/" in path is stripped so callers may pass either form.
    path = path.lstrip("/")
    return f"{host.rstrip('/')}:{port}/{path}"


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    env: str
    app_name: str
    log_level: str
    log_dir: Path

    # ---- Crypto ----
    app_key: str

    # ---- Stable Diffusion backend ----
    sd_host: str
    sd_port: str

    # ---- Main server (websocket callback) ----
    main_ws_host: str
    main_port: str
    read_timeout_seconds: float
    frame_as_json_string: bool

    # ---- Progress ----
    progress_interval_ms: int

    # ---- NSQ ----
    nsq_lookupd_host: str
    nsq_lookupd_port: str
    nsq_topic: str
    nsq_channel: str
    nsq_max_in_flight: int
    nsq_msg_timeout_seconds: int

    @property
    def progress_interval_seconds(self) -> float:
        return max(0.001, self.progress_interval_ms / 1000.0)

    @property
    def callback_url(self) -> str:
        return _join_host(self.main_ws_host, self.main_port, "sd-callback")

    @property
    def lookupd_http_address(self) -> str:
        return f"http://{self.nsq_lookupd_host}:{self.nsq_lookupd_port}"

    def api_url(self, api: str) -> str:
        """Stable Diffusion endpoint for an api path such as "sdapi/v1/txt2img"."""
        return _join_host(self.sd_host, self.sd_port, api)

    @staticmethod
    def from_env() -> "Settings":
        env = _env(_k("ENV"), "").strip()
        app_name = _env(_k("APP_NAME"), "sd-relay") or "sd-relay"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_dir = _env_path(_k("LOG_DIR"), Path("./log"))

        app_key = _env(_k("APP_KEY"), "").strip()

        sd_host = _env(_k("SD_HOST"), "http://127.0.0.1").strip()
        sd_port = _env(_k("SD_PORT"), "7860").strip()

        main_ws_host = _env(_k("MAIN_WS_HOST"), "ws://127.0.0.1").strip()
        main_port = _env(_k("MAIN_PORT"), "8080").strip()
        read_timeout_seconds = _env_float(_k("READ_TIMEOUT_SECONDS"), 60.0)
        frame_as_json_string = _env_bool(_k("FRAME_AS_JSON_STRING"), True)

        progress_interval_ms = _env_int(_k("PROGRESS_INTERVAL_MS"), 1000)

        nsq_lookupd_host = _env(_k("NSQ_LOOKUPD_HOST"), "127.0.0.1").strip()
        nsq_lookupd_port = _env(_k("NSQ_LOOKUPD_PORT"), "4161").strip()
        nsq_topic = _env(_k("NSQ_TOPIC"), "sd-task").strip()
        nsq_channel = _env(_k("NSQ_CHANNEL"), "sd-relay").strip()
        nsq_max_in_flight = max(1, _env_int(_k("NSQ_MAX_IN_FLIGHT"), 1))
        # Generation can take minutes; nsqd must not requeue while a job is running.
        nsq_msg_timeout_seconds = _env_int(_k("NSQ_MSG_TIMEOUT_SECONDS"), 15 * 60)

        return Settings(
            env=env,
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            app_key=app_key,
            sd_host=sd_host,
            sd_port=sd_port,
            main_ws_host=main_ws_host,
            main_port=main_port,
            read_timeout_seconds=read_timeout_seconds,
            frame_as_json_string=frame_as_json_string,
            progress_interval_ms=progress_interval_ms,
            nsq_lookupd_host=nsq_lookupd_host,
            nsq_lookupd_port=nsq_lookupd_port,
            nsq_topic=nsq_topic,
            nsq_channel=nsq_channel,
            nsq_max_in_flight=nsq_max_in_flight,
            nsq_msg_timeout_seconds=nsq_msg_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
