import time

import pytest

from project_console.core.engine.deadline import DeadlineBudget
from project_console.core.engine.errors import DeadlineExceeded


def test_fresh_budget_has_time_left():
    budget = DeadlineBudget.start(60)

    assert budget.expired() is False
    assert 59 < budget.remaining() <= 60
    budget.check("fresh")


def test_spent_budget_raises_with_step():
    budget = DeadlineBudget(max_duration=1.0, start_time=time.monotonic() - 2.0)

    assert budget.expired() is True
    assert budget.remaining() == 0.0
    with pytest.raises(DeadlineExceeded) as exc_info:
        budget.check("contacts")
    assert exc_info.value.step == "contacts"
    assert exc_info.value.elapsed_ms >= 2000
