from dataclasses import dataclass
from datetime import datetime, timedelta

MIN_STEP = timedelta(minutes=1)
MAX_STEP = timedelta(hours=24)
MIN_SAMPLES = 2


class InvalidTimeRangeError(ValueError):
    pass


@dataclass(frozen=True)
class TimeRange:
    """Analysis window for range queries."""
    start: datetime
    end: datetime
    step: timedelta

    def validate(self) -> None:
        """Reject windows that cannot produce a meaningful series; never clamps."""
        if self.start >= self.end:
            raise InvalidTimeRangeError(f"start ({self.start.isoformat()}) must be before end ({self.end.isoformat()})")
        if self.step < MIN_STEP:
            raise InvalidTimeRangeError(f"step {self.step} is shorter than {MIN_STEP}")
        if self.step > MAX_STEP:
            raise InvalidTimeRangeError(f"step {self.step} is longer than {MAX_STEP}")
        if (self.end - self.start) / self.step < MIN_SAMPLES:
            raise InvalidTimeRangeError(
                f"window {self.end - self.start} with step {self.step} yields fewer than {MIN_SAMPLES} samples")
