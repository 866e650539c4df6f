"""
Runtime configuration.

Values come from the defaults below, then an optional YAML file (path in
MAINT_CONFIG or passed explicitly), then MAINT_* environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from engine import (
    ActionTokenSigner,
    AnalyticsCache,
    EmailTransport,
    LoggingEmailTransport,
    MaintenanceJob,
    NotificationCoordinator,
    SmtpEmailTransport,
    Storage,
    TaskLifecycle,
    TriggerProcessor,
)

logger = logging.getLogger(__name__)

DEV_SECRET = "default-dev-secret"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Settings:
    signing_secret: str = DEV_SECRET
    base_url: str = "http://localhost:5001"
    email_transport: str = "log"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: str = "maintenance@localhost"
    job_interval: float = 3600.0
    log_level: str = "INFO"
    data_file: str = "data/maintenance.yaml"


# (environment variable, settings field, cast)
_ENV_OVERRIDES = (
    ("MAINT_SIGNING_SECRET", "signing_secret", str),
    ("MAINT_BASE_URL", "base_url", str),
    ("MAINT_EMAIL_TRANSPORT", "email_transport", str),
    ("MAINT_SMTP_HOST", "smtp_host", str),
    ("MAINT_SMTP_PORT", "smtp_port", int),
    ("MAINT_SMTP_USER", "smtp_user", str),
    ("MAINT_SMTP_PASSWORD", "smtp_password", str),
    ("MAINT_SMTP_FROM", "smtp_from", str),
    ("MAINT_JOB_INTERVAL", "job_interval", float),
    ("MAINT_LOG_LEVEL", "log_level", str),
    ("MAINT_DATA_FILE", "data_file", str),
)


def _read_config_file(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as fp:
        data = yaml.load(fp, Loader=yaml.SafeLoader) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(sorted(unknown)))
    return {k: v for k, v in data.items() if k in known}


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    path = config_path or environ.get("MAINT_CONFIG")
    if path:
        values.update(_read_config_file(Path(path)))
        logger.info("Configuration loaded from %s", path)

    for env_var, name, cast in _ENV_OVERRIDES:
        raw = environ.get(env_var)
        if raw is None:
            continue
        try:
            values[name] = cast(raw)
        except ValueError as e:
            logger.warning("Invalid value for %s=%r: %s", env_var, raw, e)

    settings = Settings(**values)
    if settings.signing_secret == DEV_SECRET:
        logger.warning("Using the development signing secret; set MAINT_SIGNING_SECRET")
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_signer(settings: Settings) -> ActionTokenSigner:
    return ActionTokenSigner(settings.signing_secret)


def build_transport(settings: Settings) -> EmailTransport:
    kind = settings.email_transport.lower()
    if kind == "smtp":
        return SmtpEmailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
        )
    if kind != "log":
        logger.warning("Unknown email transport %r, falling back to log", settings.email_transport)
    return LoggingEmailTransport()


def build_job(
    store: Storage,
    settings: Settings,
    cache: Optional[AnalyticsCache] = None,
    lifecycle: Optional[TaskLifecycle] = None,
) -> MaintenanceJob:
    """The periodic job, sharing ``cache`` so its writes drop stale analytics."""
    signer = build_signer(settings)
    if lifecycle is None:
        lifecycle = TaskLifecycle(store, cache=cache, signer=signer)
    return MaintenanceJob(
        TriggerProcessor(store, cache=cache),
        NotificationCoordinator(
            store, build_transport(settings), signer, settings.base_url, cache=cache
        ),
        lifecycle=lifecycle,
        interval=settings.job_interval,
    )
