"""
Tests for the manual lockout override: the LockoutTimer state machine,
the host-side UnlockInteraction and how a regulator honours both.
"""
from datetime import timedelta

import pytest

from models import (
    LockoutTimer, UnlockInteraction, UnlockState, VentPumpState, get_simulation_parameters
)
from helpers import T0, make_env, make_pipe


@pytest.fixture
def timer():
    return LockoutTimer(timedelta(seconds=30))


class TestLockoutTimer:

    def test_starts_idle(self, timer):
        assert timer.state == UnlockState.IDLE
        assert not timer.active
        assert timer.expires_at is None

    def test_unlock_requires_lockout(self, timer):
        """Tests an unlock cannot start while the vent is not locked out."""
        assert not timer.start_unlock(T0, in_lockout=False, anchored=True)
        assert timer.state == UnlockState.IDLE

    def test_unlock_requires_anchor(self, timer):
        assert not timer.start_unlock(T0, in_lockout=True, anchored=False)
        assert timer.state == UnlockState.IDLE

    def test_full_cycle(self, timer):
        """
        Tests Idle -> Unlocking -> Overridden -> Idle.

        Why: The override must lapse on its own after the configured duration.
        """
        assert timer.start_unlock(T0, in_lockout=True, anchored=True)
        assert timer.state == UnlockState.UNLOCKING
        assert timer.unlock_started_at == T0

        finished_at = T0 + timedelta(seconds=2)
        assert timer.finish_unlock(finished_at)
        assert timer.active
        assert timer.expires_at == finished_at + timedelta(seconds=30)

        assert not timer.check_expiry(finished_at + timedelta(seconds=29))
        assert timer.active

        assert timer.check_expiry(finished_at + timedelta(seconds=30))
        assert timer.state == UnlockState.IDLE
        assert timer.expires_at is None

    def test_second_start_while_unlocking_is_rejected(self, timer):
        timer.start_unlock(T0, in_lockout=True, anchored=True)
        assert not timer.start_unlock(T0 + timedelta(seconds=1), in_lockout=True, anchored=True)
        assert timer.unlock_started_at == T0

    @pytest.mark.parametrize("flags", [{"cancelled": True}, {"handled": True}])
    def test_cancelled_or_handled_finish_returns_to_idle(self, timer, flags):
        timer.start_unlock(T0, in_lockout=True, anchored=True)
        assert not timer.finish_unlock(T0 + timedelta(seconds=2), **flags)
        assert timer.state == UnlockState.IDLE
        assert not timer.active

    def test_finish_without_start_does_nothing(self, timer):
        assert not timer.finish_unlock(T0)
        assert timer.state == UnlockState.IDLE

    def test_cancel_only_affects_pending_unlock(self, timer):
        assert not timer.cancel_unlock()
        timer.start_unlock(T0, in_lockout=True, anchored=True)
        assert timer.cancel_unlock("moved")
        assert timer.state == UnlockState.IDLE

    def test_to_dict(self, timer):
        timer.start_unlock(T0, in_lockout=True, anchored=True)
        timer.finish_unlock(T0, source="engineer")
        data = timer.to_dict()
        assert data['state'] == UnlockState.OVERRIDDEN.value
        assert data['active'] is True
        assert data['source'] == "engineer"
        assert data['expires'] == (T0 + timedelta(seconds=30)).isoformat()


class TestUnlockInteraction:

    def test_due_after_delay(self):
        interaction = UnlockInteraction(1, T0, timedelta(seconds=2))
        assert not interaction.is_due(T0 + timedelta(seconds=1))
        assert interaction.is_due(T0 + timedelta(seconds=2))

    def test_interrupt_makes_it_due_immediately(self):
        interaction = UnlockInteraction(1, T0, timedelta(seconds=2))
        interaction.interrupt("moved")
        interaction.interrupt("damaged")
        assert interaction.is_due(T0)
        assert interaction.interrupted == "moved"


class TestRegulatorOverride:

    def lock_out(self, reg):
        """Tick once against a near-vacuum room so the lockout engages."""
        reg.tick(1.0, make_pipe(200.0), make_env(5.0), now=T0)
        assert reg.under_pressure_lockout

    def test_unlock_rejected_when_not_locked_out(self, make_regulator):
        reg = make_regulator()
        assert not reg.request_unlock(T0)

    def test_unlock_rejected_when_unanchored(self, make_regulator):
        reg = make_regulator()
        self.lock_out(reg)
        reg.set_anchored(False)
        assert not reg.request_unlock(T0)

    def test_override_restores_nominal_flow_then_expires(self, make_regulator, clock):
        """
        Tests the manual override lets full flow through until it lapses.

        Why: A locked-out vent can be forced open for a limited time only.
        """
        reg = make_regulator()
        self.lock_out(reg)
        assert reg.visual_state == VentPumpState.LOCKOUT

        assert reg.request_unlock(T0)
        assert reg.finish_unlock(T0 + timedelta(seconds=2), source="engineer")
        assert reg.lockout_state.manual_override_active
        expires = reg.lockout_state.manual_override_expires_at
        assert expires == T0 + timedelta(seconds=32)

        outcome = reg.tick(1.0, make_pipe(200.0), make_env(5.0), now=T0 + timedelta(seconds=10))
        assert not reg.under_pressure_lockout
        assert not outcome.leaking
        assert reg.visual_state == VentPumpState.OUT

        # Re-requesting during the override never moves the deadline
        assert not reg.request_unlock(T0 + timedelta(seconds=20))
        assert reg.lockout_state.manual_override_expires_at == expires

        outcome = reg.tick(1.0, make_pipe(200.0), make_env(5.0), now=expires)
        assert not reg.lockout_state.manual_override_active
        assert reg.under_pressure_lockout
        assert outcome.leaking
        assert reg.visual_state == VentPumpState.LOCKOUT

    def test_tick_uses_clock_when_now_omitted(self, make_regulator, clock):
        reg = make_regulator()
        self.lock_out(reg)
        reg.request_unlock()
        reg.finish_unlock()
        assert reg.lockout_timer.expires_at == T0 + timedelta(seconds=30)

        clock.advance(30)
        reg.tick(1.0, make_pipe(200.0), make_env(5.0))
        assert not reg.lockout_timer.active

    def test_moving_the_vent_cancels_pending_unlock(self, make_regulator):
        reg = make_regulator()
        self.lock_out(reg)
        assert reg.request_unlock(T0)
        reg.set_anchored(False)
        assert reg.lockout_timer.state == UnlockState.IDLE
        assert not reg.finish_unlock(T0 + timedelta(seconds=2))

    def test_profile_sets_override_duration(self, make_regulator, plain_profile):
        plain_profile.manual_lockout_duration = 90.0
        reg = make_regulator(profile=plain_profile)
        assert reg.lockout_timer.duration == timedelta(seconds=90)

    def test_parameter_default_duration(self, make_regulator, plain_profile):
        get_simulation_parameters().set('manual_lockout_duration', 45)
        plain_profile.manual_lockout_duration = None
        reg = make_regulator(profile=plain_profile)
        assert reg.lockout_timer.duration == timedelta(seconds=45)

    def test_examine_mentions_lockout(self, make_regulator):
        reg = make_regulator()
        self.lock_out(reg)
        lines = reg.examine()
        assert len(lines) == 2
        assert "lockout" in lines[1]
        assert reg.examine(in_details_range=False) == [lines[0]]
