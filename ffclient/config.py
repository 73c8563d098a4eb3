import logging
import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_BASE_URL = "https://config.ff.harness.io/api/1.0"
DEFAULT_EVENT_URL = "https://events.ff.harness.io/api/1.0"


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Options(BaseModel):
    """Client options; camelCase aliases (baseUrl, streamEnabled, ...) are accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    debug: bool = False
    base_url: str = DEFAULT_BASE_URL
    event_url: str = DEFAULT_EVENT_URL
    stream_enabled: bool = True
    all_attributes_private: bool = False
    private_attribute_names: List[str] = []

    stream_transport: str = "sse"
    # heuristic: lets the service propagate a new flag before it is fetched
    create_event_delay: float = Field(1.0, ge=0)
    stream_retry_interval: float = Field(3.0, ge=0)
    # no stream data for this long counts as a dropped connection
    stream_read_timeout: Optional[float] = Field(None, gt=0)
    request_timeout: Optional[float] = None
    max_workers: int = Field(4, ge=1)
    metrics_port: Optional[int] = None

    @field_validator("base_url", "event_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def from_env(cls, **overrides) -> "Options":
        values = {
            "debug": _env_flag("FF_DEBUG"),
            "base_url": os.getenv("FF_BASE_URL"),
            "event_url": os.getenv("FF_EVENT_URL"),
            "stream_enabled": _env_flag("FF_STREAM_ENABLED"),
            "metrics_port": os.getenv("FF_METRICS_PORT"),
        }
        values = {k: v for k, v in values.items() if v is not None}
        values.update(overrides)
        return cls(**values)


def configure_logging(options: Options):
    if options.debug:
        logging.getLogger("ffclient").setLevel(logging.DEBUG)
