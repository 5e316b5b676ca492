"""Tests for the standby timer."""

from datetime import timedelta

from pytest_homeassistant_custom_component.common import async_fire_time_changed

from homeassistant.util import dt as dt_util

from custom_components.onkyo_control.standby import StandbyTimer


async def test_check_runs_after_delay(hass) -> None:
    """Test the check runs once the delay passed."""
    checks = []
    timer = StandbyTimer(hass, lambda: checks.append(1))
    now = dt_util.utcnow()

    timer.async_arm(3)
    assert timer.armed

    async_fire_time_changed(hass, now + timedelta(seconds=1))
    await hass.async_block_till_done()
    assert checks == []

    async_fire_time_changed(hass, now + timedelta(seconds=4))
    await hass.async_block_till_done()
    assert checks == [1]
    assert not timer.armed


async def test_newest_arm_wins(hass) -> None:
    """Test an earlier arm does not run the check for a later one."""
    checks = []
    timer = StandbyTimer(hass, lambda: checks.append(1))
    now = dt_util.utcnow()

    timer.async_arm(3)
    timer.async_arm(10)

    async_fire_time_changed(hass, now + timedelta(seconds=4))
    await hass.async_block_till_done()
    assert checks == []

    async_fire_time_changed(hass, now + timedelta(seconds=11))
    await hass.async_block_till_done()
    assert checks == [1]


async def test_cancel(hass) -> None:
    """Test cancelled checks never run."""
    checks = []
    timer = StandbyTimer(hass, lambda: checks.append(1))
    now = dt_util.utcnow()

    timer.async_arm(0)
    timer.async_cancel()

    async_fire_time_changed(hass, now + timedelta(seconds=1))
    await hass.async_block_till_done()
    assert checks == []
    assert not timer.armed
