"""
Configuration management using Pydantic models loaded from YAML.

Times may be written as quoted ``"HH:MM"`` strings. Unquoted ``9:00`` is read
by YAML 1.1 as the sexagesimal integer 540, which is also minutes since
midnight, so it is accepted as such.
"""

from datetime import date as stdlib_date
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.days import DayOfWeek, load_timezone, parse_calendar_date
from .domain.intervals import Interval
from .domain.models import Break, PartialClosure

TimeValue = Union[str, int]


def _normalise_day(value: Union[str, int]) -> str:
    return DayOfWeek.parse(value).label


class DefaultsConfig(BaseModel):
    """Default settings for slot generation."""
    slot_step_minutes: int = 30
    service_duration_minutes: int = 30

    @field_validator("slot_step_minutes", "service_duration_minutes")
    @classmethod
    def validate_minutes(cls, value: int) -> int:
        """Ensure durations are positive."""
        if value <= 0:
            raise ValueError(f"Durations must be greater than zero, got {value}")
        return value


class TimeWindow(BaseModel):
    """A start/end pair of times of day."""
    start: TimeValue
    end: TimeValue

    @model_validator(mode="after")
    def validate_order(self) -> "TimeWindow":
        """Ensure the window opens before it closes."""
        self.to_interval()
        return self

    def to_interval(self) -> Interval:
        return Interval.parse(self.start, self.end)


class BreakConfig(BaseModel):
    """A recurring break, shop-wide or personal."""
    name: str = ""
    day: Optional[str] = None
    start: TimeValue
    end: TimeValue

    @field_validator("day", mode="before")
    @classmethod
    def validate_day(cls, value):
        return None if value is None else _normalise_day(value)

    @model_validator(mode="after")
    def validate_order(self) -> "BreakConfig":
        Interval.parse(self.start, self.end)
        return self

    def to_break(self, staff_id: Optional[str] = None) -> Break:
        return Break(
            interval=Interval.parse(self.start, self.end),
            name=self.name,
            day_of_week=DayOfWeek.parse(self.day) if self.day else None,
            staff_id=staff_id,
        )


class StaffConfig(BaseModel):
    """Staff member with weekly working hours and personal breaks."""
    id: str
    name: str = ""
    working_hours: Dict[str, List[TimeWindow]] = Field(default_factory=dict)
    breaks: List[BreakConfig] = Field(default_factory=list)

    @field_validator("working_hours", mode="before")
    @classmethod
    def validate_days(cls, value):
        if not isinstance(value, dict):
            return value
        return {_normalise_day(day): windows or [] for day, windows in value.items()}

    def display_name(self) -> str:
        return self.name or self.id

    def windows_for(self, day: DayOfWeek) -> List[Interval]:
        return [window.to_interval() for window in self.working_hours.get(day.label, [])]


class ClosureConfig(BaseModel):
    """A one-off closure: full day when no start/end is given."""
    date: str
    reason: str = ""
    start: Optional[TimeValue] = None
    end: Optional[TimeValue] = None

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, value):
        # YAML turns unquoted 2024-12-25 into a date object
        if isinstance(value, (str, stdlib_date)):
            return parse_calendar_date(value).isoformat()
        return value

    @model_validator(mode="after")
    def validate_bounds(self) -> "ClosureConfig":
        """A partial closure needs both bounds."""
        if (self.start is None) != (self.end is None):
            raise ValueError(f"Closure on {self.date} needs both start and end, or neither")
        if self.start is not None:
            Interval.parse(self.start, self.end)
        return self

    @property
    def is_full_day(self) -> bool:
        return self.start is None

    def to_partial(self) -> PartialClosure:
        return PartialClosure(interval=Interval.parse(self.start, self.end), reason=self.reason)


class ServiceConfig(BaseModel):
    """A bookable service."""
    name: str
    duration_minutes: int

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    database_url: Optional[str] = None
    lock_timeout_seconds: float = 5.0
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    business_hours: Dict[str, Optional[TimeWindow]] = Field(default_factory=dict)
    breaks: List[BreakConfig] = Field(default_factory=list)
    staff: List[StaffConfig] = Field(default_factory=list)
    closures: List[ClosureConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the business timezone is a known IANA identifier."""
        load_timezone(value)
        return value

    @field_validator("lock_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("lock_timeout_seconds must be greater than zero")
        return value

    @field_validator("business_hours", mode="before")
    @classmethod
    def validate_business_days(cls, value):
        if not isinstance(value, dict):
            return value
        return {_normalise_day(day): window for day, window in value.items()}

    @field_validator("staff")
    @classmethod
    def validate_staff(cls, value: List[StaffConfig]) -> List[StaffConfig]:
        """Ensure staff ids are unique."""
        seen: set[str] = set()
        for member in value:
            if member.id in seen:
                raise ValueError(f"Duplicate staff id detected: {member.id}")
            seen.add(member.id)
        return value

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service names are unique."""
        seen: set[str] = set()
        for service in value:
            key = service.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate service name detected: {service.name}")
            seen.add(key)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def business_window_for(self, day: DayOfWeek) -> Optional[Interval]:
        window = self.business_hours.get(day.label)
        return window.to_interval() if window else None

    def find_staff(self, identifier: str) -> StaffConfig | None:
        """Find a staff member by id, or by name (case-insensitive)."""
        for member in self.staff:
            if member.id == identifier:
                return member
        for member in self.staff:
            if member.name and member.name.lower() == identifier.lower():
                return member
        return None

    def find_service(self, name: str) -> ServiceConfig | None:
        """Find a service by name (case-insensitive)."""
        for service in self.services:
            if service.name.lower() == name.lower():
                return service
        return None

    def resolve_service_durations(self, names: Sequence[str]) -> List[int]:
        """
        Resolve service names to their durations.

        Raises:
            ValueError: If no names are given or any name is unknown
        """
        if not names:
            raise ValueError("No services provided.")

        unknown = [name for name in names if self.find_service(name) is None]
        if unknown:
            missing = ", ".join(sorted(set(unknown)))
            raise ValueError(
                f"Unknown service(s): {missing}. "
                "Ensure they exist in the configuration."
            )

        return [self.find_service(name).duration_minutes for name in names]


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
