from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Any, List, Optional
from datetime import datetime, timedelta

import yaml

from terminal import TColors, gray


class ConfigError(Exception):
    """Raised when a display configuration file cannot be read or is invalid."""


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    def with_(self, **changes: Any):
        """Return a validated copy with the given fields replaced."""
        return type(self)(**{**dict(self), **changes})


class ProgressbarConfig(_FrozenConfig):
    """Finalized settings of a progress bar. Build variants with the with_* methods."""
    title: str = ""
    total: int = Field(default=100, ge=0)
    current: int = Field(default=0, ge=0)
    bar_character: str = "█"
    last_character: str = "█"
    bar_filler: str = gray("█")
    elapsed_time_rounding_factor: timedelta = timedelta(seconds=1)
    # Zero or below means "use the terminal width".
    max_width: int = 80

    show_title: bool = True
    show_count: bool = True
    show_percentage: bool = True
    show_elapsed_time: bool = True
    remove_when_done: bool = False

    title_style: str = TColors.LIGHT_CYAN
    bar_style: str = TColors.CYAN

    # Non-interactive output: the title is printed once on its own line at start.
    raw_output: bool = False
    started_at: Optional[datetime] = None
    writer: Optional[Any] = Field(default=None, exclude=True)

    @field_validator("elapsed_time_rounding_factor")
    @classmethod
    def check_rounding_factor(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("elapsed_time_rounding_factor must not be negative")
        return value

    def with_title(self, title: str) -> "ProgressbarConfig":
        return self.with_(title=title)

    def with_total(self, total: int) -> "ProgressbarConfig":
        return self.with_(total=total)

    def with_current(self, current: int) -> "ProgressbarConfig":
        return self.with_(current=current)

    def with_bar_character(self, char: str) -> "ProgressbarConfig":
        return self.with_(bar_character=char)

    def with_last_character(self, char: str) -> "ProgressbarConfig":
        return self.with_(last_character=char)

    def with_bar_filler(self, char: str) -> "ProgressbarConfig":
        return self.with_(bar_filler=char)

    def with_elapsed_time_rounding_factor(self, factor: timedelta) -> "ProgressbarConfig":
        return self.with_(elapsed_time_rounding_factor=factor)

    def with_max_width(self, max_width: int) -> "ProgressbarConfig":
        """If the terminal is narrower than max_width, the terminal width is used instead."""
        return self.with_(max_width=max_width)

    def with_show_title(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(show_title=flag)

    def with_show_count(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(show_count=flag)

    def with_show_percentage(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(show_percentage=flag)

    def with_show_elapsed_time(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(show_elapsed_time=flag)

    def with_remove_when_done(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(remove_when_done=flag)

    def with_title_style(self, style: str) -> "ProgressbarConfig":
        return self.with_(title_style=style)

    def with_bar_style(self, style: str) -> "ProgressbarConfig":
        return self.with_(bar_style=style)

    def with_raw_output(self, flag: bool = True) -> "ProgressbarConfig":
        return self.with_(raw_output=flag)

    def with_started_at(self, started_at: datetime) -> "ProgressbarConfig":
        return self.with_(started_at=started_at)

    def with_writer(self, writer: Optional[Any]) -> "ProgressbarConfig":
        return self.with_(writer=writer)


class MultiPrinterConfig(_FrozenConfig):
    update_delay: timedelta = timedelta(milliseconds=200)
    writer: Optional[Any] = Field(default=None, exclude=True)

    @field_validator("update_delay")
    @classmethod
    def check_update_delay(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("update_delay must be positive")
        return value

    def with_update_delay(self, delay: timedelta) -> "MultiPrinterConfig":
        return self.with_(update_delay=delay)

    def with_writer(self, writer: Optional[Any]) -> "MultiPrinterConfig":
        return self.with_(writer=writer)


class DisplayConfig(BaseModel):
    """Contents of a display configuration file."""
    multi_printer: MultiPrinterConfig = MultiPrinterConfig()
    progressbars: List[ProgressbarConfig] = []


DEFAULT_PROGRESSBAR = ProgressbarConfig()
DEFAULT_MULTI_PRINTER = MultiPrinterConfig()


def load_config(config_path: str) -> DisplayConfig:
    """Read and validate a YAML display configuration."""
    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config '{config_path}': {e}") from e

    try:
        return DisplayConfig.model_validate(raw or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid config '{config_path}': {e}") from e
