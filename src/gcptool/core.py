import os
from pathlib import Path

from google.api_core import exceptions
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ConfigError

# Errors worth a second attempt. Auth and not-found style failures are final.
TRANSIENT_ERRORS = (
    exceptions.ServiceUnavailable,
    exceptions.TooManyRequests,
    exceptions.InternalServerError,
    exceptions.DeadlineExceeded,
)

# Shared retry configuration
# usage: @retry(**RETRY_CONFIG)
RETRY_CONFIG = {
    "stop": stop_after_attempt(3),
    "wait": wait_exponential(multiplier=1, min=4, max=10),
    "retry": retry_if_exception_type(TRANSIENT_ERRORS),
    "reraise": True,
}

CACHE_TTL_SECONDS = 300
START_SETTLE_SECONDS = 5.0

PROJECTS_CACHE_KEY = "projects"

# Role tokens used in instance naming conventions
ROLE_AUTHOR = "author"
ROLE_PUBLISH = "publish"
ROLE_DISPATCHER = "dispatcher"

# AEM endpoints (served by author/publish hosts only)
AEM_LOGIN_PATH = "/libs/granite/core/content/login.html"
AEM_CRX_PATH = "/crx/de"
AEM_CONSOLE_PATH = "/system/console"

STATUS_RUNNING = "RUNNING"
STATUS_TERMINATED = "TERMINATED"


# ToolConfig field -> environment variable
ENV_OVERRIDES = {
    "cache_dir": "GCPTOOL_CACHE_DIR",
    "settle_delay": "GCPTOOL_SETTLE_DELAY",
    "max_workers": "GCPTOOL_MAX_WORKERS",
}


def instances_cache_key(project_id: str) -> str:
    return f"instances_{project_id}"


def default_cache_dir() -> Path:
    return Path.home() / ".gcp-tools" / "cache"


class ToolConfig(BaseModel):
    """Immutable settings handed to every component at construction."""

    model_config = ConfigDict(frozen=True)

    cache_dir: Path = Field(default_factory=default_cache_dir)
    cache_ttl: float = Field(default=CACHE_TTL_SECONDS, gt=0)
    settle_delay: float = Field(default=START_SETTLE_SECONDS, ge=0)
    max_workers: int = Field(default=10, ge=1)
    ssh_flags: tuple[str, ...] = ("--tunnel-through-iap",)

    @classmethod
    def from_env(cls) -> "ToolConfig":
        """Builds a config, honouring GCPTOOL_* environment overrides."""
        overrides: dict[str, object] = {}
        for field_name, var in ENV_OVERRIDES.items():
            if value := os.environ.get(var):
                overrides[field_name] = value
        if "cache_dir" in overrides:
            overrides["cache_dir"] = Path(str(overrides["cache_dir"])).expanduser()
        try:
            return cls(**overrides)  # type: ignore[arg-type]
        except ValidationError as e:
            first = e.errors()[0]
            var = ENV_OVERRIDES[str(first["loc"][0])]
            raise ConfigError(var, os.environ[var], first["msg"]) from None
