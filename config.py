import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("text", "json")

DEFAULT_CONFIG_FILE = "expensetrace.yml"
DEFAULT_DB_SOURCE = "expensetrace.db"
DEFAULT_IMPORT_SESSION_TTL = 600
DEFAULT_MAX_UPLOAD_BYTES = 32 << 20


class DBSettings:
    def __init__(
        self,
        source: str = DEFAULT_DB_SOURCE,
        max_open_conns: int = 0,
        max_idle_conns: int = 0,
        conn_max_lifetime: int = 0,
        journal_mode: str = "",
        synchronous: str = "",
        cache_size: int = 0,
        busy_timeout: int = 0,
        wal_autocheckpoint: int = 0,
        temp_store: str = "",
    ) -> None:
        self.source = source
        self.max_open_conns = max_open_conns
        self.max_idle_conns = max_idle_conns
        self.conn_max_lifetime = conn_max_lifetime
        self.journal_mode = journal_mode
        self.synchronous = synchronous
        self.cache_size = cache_size
        self.busy_timeout = busy_timeout
        self.wal_autocheckpoint = wal_autocheckpoint
        self.temp_store = temp_store

    @property
    def url(self) -> str:
        if self.source.startswith("sqlite"):
            return self.source
        if self.source == ":memory:":
            return "sqlite+pysqlite:///:memory:"
        return f"sqlite+pysqlite:///{self.source}"


class LoggerSettings:
    def __init__(
        self, level: str = "info", format: str = "text", output: str = "stdout"
    ) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {level}")
        if format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {format}")
        self.level = level
        self.format = format
        self.output = output


class Settings:
    def __init__(
        self,
        db: DBSettings,
        logger: LoggerSettings,
        import_session_ttl: int = DEFAULT_IMPORT_SESSION_TTL,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self.db = db
        self.logger = logger
        self.import_session_ttl = import_session_ttl
        self.max_upload_bytes = max_upload_bytes


_DB_INT_KEYS = (
    "max_open_conns",
    "max_idle_conns",
    "conn_max_lifetime",
    "cache_size",
    "busy_timeout",
    "wal_autocheckpoint",
)
_DB_STR_KEYS = ("journal_mode", "synchronous", "temp_store")


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def load_settings(config_file: Optional[str] = None) -> Settings:
    path = Path(config_file or os.getenv("EXPENSETRACE_CONFIG", DEFAULT_CONFIG_FILE))
    raw = _read_config_file(path)
    db_raw: dict[str, Any] = dict(raw.get("db") or {})
    logger_raw: dict[str, Any] = dict(raw.get("logger") or {})

    if not db_raw.get("source"):
        db_raw["source"] = os.getenv("EXPENSETRACE_DB", DEFAULT_DB_SOURCE)
    for key in _DB_INT_KEYS:
        if not db_raw.get(key):
            value = _env_int(f"EXPENSETRACE_DB_{key.upper()}")
            if value is not None:
                db_raw[key] = value
    for key in _DB_STR_KEYS:
        if not db_raw.get(key):
            value = os.getenv(f"EXPENSETRACE_DB_{key.upper()}")
            if value:
                db_raw[key] = value

    if not logger_raw.get("level"):
        logger_raw["level"] = os.getenv("EXPENSETRACE_LOG_LEVEL", "info")
    if not logger_raw.get("format"):
        logger_raw["format"] = os.getenv("EXPENSETRACE_LOG_FORMAT", "text")
    if not logger_raw.get("output"):
        logger_raw["output"] = os.getenv("EXPENSETRACE_LOG_OUTPUT", "stdout")

    import_session_ttl = raw.get("import_session_ttl") or _env_int(
        "EXPENSETRACE_IMPORT_SESSION_TTL"
    )
    max_upload_bytes = raw.get("max_upload_bytes") or _env_int(
        "EXPENSETRACE_MAX_UPLOAD_BYTES"
    )

    return Settings(
        db=DBSettings(**db_raw),
        logger=LoggerSettings(**logger_raw),
        import_session_ttl=int(import_session_ttl or DEFAULT_IMPORT_SESSION_TTL),
        max_upload_bytes=int(max_upload_bytes or DEFAULT_MAX_UPLOAD_BYTES),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
