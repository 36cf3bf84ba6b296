"""Django settings for running agent_commissions as a standalone service."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    """Service settings loaded from AGENT_COMMISSIONS_* environment variables."""

    secret_key: str = Field(default="agent-commissions-dev-key", description="Django secret key")
    debug: bool = Field(default=False, description="Django debug mode")

    # Database
    database_engine: str = Field(default="django.db.backends.sqlite3", description="Django database backend")
    database_name: str = Field(default="agent_commissions.db", description="Database name or SQLite path")
    database_user: str = Field(default="", description="Database user")
    database_password: str = Field(default="", description="Database password")
    database_host: str = Field(default="", description="Database host")
    database_port: str = Field(default="", description="Database port")

    log_level: str = Field(default="INFO", description="Log level for the agent_commissions logger")
    time_zone: str = Field(default="UTC", description="Service time zone")

    model_config = SettingsConfigDict(
        env_prefix="AGENT_COMMISSIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def database_path(self) -> Path:
        """Return the database name as a Path (SQLite only)."""
        return Path(self.database_name)


service_settings = ServiceSettings()

SECRET_KEY = service_settings.secret_key
DEBUG = service_settings.debug
ALLOWED_HOSTS = ["*"] if DEBUG else []

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "agent_commissions",
]

MIDDLEWARE = [
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": service_settings.database_engine,
        "NAME": service_settings.database_name,
        "USER": service_settings.database_user,
        "PASSWORD": service_settings.database_password,
        "HOST": service_settings.database_host,
        "PORT": service_settings.database_port,
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = service_settings.time_zone
USE_I18N = True
LANGUAGE_CODE = "en-us"

AGENT_COMMISSIONS = {}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "agent_commissions": {
            "handlers": ["console"],
            "level": service_settings.log_level.upper(),
        },
    },
}
