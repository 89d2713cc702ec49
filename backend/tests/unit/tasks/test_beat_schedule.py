"""Tests for the Celery beat schedule."""

from datetime import timedelta

import pytest

from talbiyah.core.config import settings
from talbiyah.tasks.beat_schedule import get_beat_schedule


@pytest.mark.unit
class TestBeatSchedule:
    def test_periodic_tasks_are_scheduled(self):
        schedule = get_beat_schedule()
        tasks = {entry["task"] for entry in schedule.values()}

        assert {
            "confirmations.auto_acknowledge_stale",
            "confirmations.retry_pending_refunds",
            "outbox.dispatch_pending",
        } <= tasks

    def test_sweep_interval_follows_settings(self):
        entry = get_beat_schedule()["auto-acknowledge-stale-lessons"]

        assert entry["schedule"] == timedelta(minutes=settings.auto_acknowledge_sweep_minutes)
        assert entry["options"]["queue"] == "confirmations"
