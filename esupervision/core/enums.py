"""
Check-in schedule intervals and identity check outcomes.
"""
from datetime import timedelta
from enum import Enum
from typing import Union

from esupervision.core.exceptions import BadArgument


class CheckinInterval(Enum):
    """Fixed gaps between scheduled check-ins, ordered by duration."""
    WEEKLY = timedelta(days=7)
    TWO_WEEKS = timedelta(days=14)
    FOUR_WEEKS = timedelta(days=28)
    EIGHT_WEEKS = timedelta(days=56)

    @property
    def duration(self) -> timedelta:
        return self.value

    @property
    def days(self) -> int:
        return self.value.days

    def __lt__(self, other):
        if not isinstance(other, CheckinInterval):
            return NotImplemented
        return self.value < other.value

    @classmethod
    def from_duration(cls, duration: timedelta) -> "CheckinInterval":
        for interval in cls:
            if interval.value == duration:
                return interval
        raise BadArgument(f"No CheckinInterval for duration: {duration}")

    @classmethod
    def parse(cls, value: Union["CheckinInterval", str, timedelta, int]) -> "CheckinInterval":
        """
        Resolve an interval from its name, a duration or a number of days.

        Raises:
            BadArgument: value is not one of the fixed intervals
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, timedelta):
            return cls.from_duration(value)
        if isinstance(value, bool):
            raise BadArgument(f"Invalid check-in interval: {value!r}")
        if isinstance(value, int):
            return cls.from_duration(timedelta(days=value))
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise BadArgument(f"Invalid check-in interval: {value!r}") from None
        raise BadArgument(f"Invalid check-in interval: {value!r}")


class AutomatedIdVerificationResult(str, Enum):
    """Outcome of automated face comparison."""
    MATCH = "MATCH"
    NO_MATCH = "NO_MATCH"
    NO_FACE_DETECTED = "NO_FACE_DETECTED"
    ERROR = "ERROR"


class ManualIdVerificationResult(str, Enum):
    """Practitioner's identity decision recorded at review."""
    MATCH = "MATCH"
    NO_MATCH = "NO_MATCH"
