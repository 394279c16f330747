import logging
import logging.handlers
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://journal:journal@db:5432/journal"
    secret_key: str = "change-me"
    # Bearer token the external cron uses for /internal endpoints
    service_role_key: str = ""

    # Web push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:support@hibioru.app"
    push_timeout_seconds: float = 10.0
    push_ttl_seconds: int = 86400

    # Notification content
    notification_icon: str = "/icons/icon-192x192.png"
    notification_url: str = "/"

    # Delivery log retention
    log_retention_days: int = 90

    # HTTP
    cors_origins: str = "*"
    cors_allow_credentials: bool = True
    trusted_hosts: str = "*"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10 MB
    log_backup_count: int = 5

    model_config = {"env_file": ".env"}

    @property
    def effective_database_url(self) -> str:
        """Normalise Heroku-style postgres:// URLs for SQLAlchemy."""
        if self.database_url.startswith("postgres://"):
            return "postgresql://" + self.database_url[len("postgres://"):]
        return self.database_url

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_hosts_list(self) -> list[str]:
        return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()


_CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(process)d [%(name)s:%(lineno)d] %(message)s"

# Per-request and per-device chatter from these is not useful at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "urllib3", "pywebpush", "alembic.runtime.migration")


def _rotating_file(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """Route all loggers to stdout plus ``app.log`` (everything) and ``error.log`` (ERROR+).

    Both files rotate at ``LOG_MAX_BYTES`` keeping ``LOG_BACKUP_COUNT`` old copies.
    """
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    file_formatter = logging.Formatter(_FILE_FORMAT)
    root.addHandler(_rotating_file(log_dir / "app.log", logging.DEBUG, file_formatter))
    root.addHandler(_rotating_file(log_dir / "error.log", logging.ERROR, file_formatter))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging to %s at %s", log_dir.resolve(), settings.log_level.upper())
