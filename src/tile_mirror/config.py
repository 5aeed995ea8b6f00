"""Job configuration loaded from a YAML file."""

import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .discovery import build_link_templates, subpage_pattern
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class PageJob(BaseModel):
    """One crawl job: a root index page plus the page ranges to follow."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    name: str = Field(..., min_length=1, description="Label used in logs")
    url: str = Field(..., description="Absolute URL of the root index page")
    page_ranges: tuple[str, ...] = Field(
        default=(),
        alias="pageRanges",
        description="Sub-page filters, each optionally '|'-separated",
    )

    @field_validator("page_ranges")
    @classmethod
    def _templates_compile(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for template in build_link_templates(value):
            try:
                subpage_pattern(template)
            except re.error as e:
                raise ValueError(f"page range {template!r} is not a valid pattern: {e}") from e
        return value


class MirrorConfig(BaseModel):
    """Output root and the ordered list of jobs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target_dir: Path = Field(..., alias="targetDir")
    pages: tuple[PageJob, ...] = Field(default=())


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> MirrorConfig:
    """Read and validate the config file. Raises ConfigError on any problem."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"unable to read config {path}: {e}") from e

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(document, dict):
        raise ConfigError(f"config {path} must be a mapping with targetDir and pages")

    try:
        config = MirrorConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    logger.debug("Loaded %d jobs from %s", len(config.pages), path)
    return config
