import time
from dataclasses import dataclass, field

from project_console.core.engine.errors import DeadlineExceeded


@dataclass(frozen=True)
class DeadlineBudget:
    """
    Cooperative wall-clock budget for one request.

    Checked between network round trips, never preemptive: an in-flight call
    always completes before the budget is looked at again.
    """

    max_duration: float
    start_time: float = field(default_factory=time.monotonic)

    @classmethod
    def start(cls, max_seconds: float) -> "DeadlineBudget":
        return cls(max_duration=max_seconds)

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def remaining(self) -> float:
        return max(0.0, self.max_duration - self.elapsed())

    def expired(self) -> bool:
        return self.elapsed() >= self.max_duration

    def check(self, step: str = "") -> None:
        """Raise DeadlineExceeded if the budget is spent."""
        if self.expired():
            raise DeadlineExceeded(step, self.elapsed_ms())
