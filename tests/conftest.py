from __future__ import annotations

from datetime import datetime

import pytest

import moveup.modules.booking.service as booking_service_module
from fakes import FIXED_NOW, BookingEnv, build_booking_env


@pytest.fixture
def fixed_now(monkeypatch: pytest.MonkeyPatch) -> datetime:
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: FIXED_NOW)
    return FIXED_NOW


@pytest.fixture
def booking_env(fixed_now: datetime) -> BookingEnv:
    return build_booking_env()
