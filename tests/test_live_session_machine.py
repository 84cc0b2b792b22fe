"""
Live-session state machine tests.

The machine is exercised directly, without a database.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.models.enums import (
    BroadcastEventType,
    ChatMode,
    ControlMode,
    LiveSessionStatus,
    PauseReason,
    PlayState,
    SessionBlockStatus,
)
from app.schemas.live_session import BroadcastEvent
from app.schemas.results import ErrorKind
from app.services.live_session import LiveSessionState, LiveSessionStateMachine

NOW = datetime(2026, 5, 1, 18, 0, tzinfo=timezone.utc)


def machine_for(strict=False, **state):
    return LiveSessionStateMachine(LiveSessionState(**state), strict_play_states=strict, require_blocks=True)


def block(status=SessionBlockStatus.PENDING):
    return SimpleNamespace(id=uuid4(), status=status.value)


class TestStatusTransitions:
    def test_start_from_draft_stamps_start_time(self):
        machine = machine_for()
        result = machine.change_status(LiveSessionStatus.ACTIVE, block_count=2, now=NOW)

        assert result.success
        assert result.state.status == LiveSessionStatus.ACTIVE
        assert result.state.actual_start_time == NOW
        assert result.changes["actual_start_time"] == NOW

    def test_resume_does_not_restamp_start_time(self):
        machine = machine_for(status=LiveSessionStatus.PAUSED, pause_reason=PauseReason.HOST_HOLD, actual_start_time=NOW)
        result = machine.resume()

        assert result.success
        assert "actual_start_time" not in result.changes
        assert result.state.actual_start_time == NOW

    def test_cannot_leave_draft_without_blocks(self):
        result = machine_for().start(block_count=0)

        assert not result.success
        assert result.error == ErrorKind.VALIDATION

    def test_draft_can_be_ended_without_blocks(self):
        assert machine_for().change_status(LiveSessionStatus.ENDED, block_count=0).success

    def test_draft_to_waiting(self):
        result = machine_for().change_status(LiveSessionStatus.WAITING, block_count=1)
        assert result.success
        assert result.state.actual_start_time is None

    def test_invalid_transition(self):
        result = machine_for(status=LiveSessionStatus.ACTIVE).change_status(LiveSessionStatus.WAITING)

        assert not result.success
        assert result.error == ErrorKind.CONFLICT
        assert "Invalid status transition" in result.message

    def test_same_status_rejected(self):
        assert not machine_for(status=LiveSessionStatus.ACTIVE).change_status(LiveSessionStatus.ACTIVE).success

    def test_end_sets_play_state_and_timestamp(self):
        result = machine_for(status=LiveSessionStatus.ACTIVE).change_status(LiveSessionStatus.ENDED, now=NOW)

        assert result.state.status == LiveSessionStatus.ENDED
        assert result.state.play_state == PlayState.ENDED
        assert result.state.ended_at == NOW

    def test_ended_is_terminal(self):
        machine = machine_for(status=LiveSessionStatus.ENDED, play_state=PlayState.ENDED)

        assert not machine.resume().success
        assert not machine.pause(PauseReason.SYSTEM).success
        assert not machine.change_play_state(PlayState.LOBBY).success
        assert not machine.change_control_mode(ControlMode.AUTOPLAY).success
        assert not machine.change_chat_mode(ChatMode.MUTED).success
        assert not machine.change_block_status(block(), SessionBlockStatus.ACTIVE).success

    def test_state_untouched_until_applied(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        result = machine.pause(PauseReason.HOST_HOLD)

        assert machine.state.status == LiveSessionStatus.ACTIVE
        machine.apply(result)
        assert machine.state.status == LiveSessionStatus.PAUSED

    def test_rejected_result_is_not_applied(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        machine.apply(machine.pause(None))
        assert machine.state.status == LiveSessionStatus.ACTIVE


class TestPause:
    def test_pause_requires_reason(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        result = machine.pause(None)

        assert not result.success
        assert result.error == ErrorKind.VALIDATION
        assert result.state.status == LiveSessionStatus.ACTIVE

    def test_moderation_pause_mutes_chat(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        result = machine.pause(PauseReason.MODERATION)

        assert result.success
        assert result.state.status == LiveSessionStatus.PAUSED
        assert result.state.pause_reason == PauseReason.MODERATION
        assert result.state.chat_mode == ChatMode.MUTED

    def test_other_pause_reasons_leave_chat_alone(self):
        result = machine_for(status=LiveSessionStatus.ACTIVE).pause(PauseReason.TECHNICAL_ISSUE)
        assert result.state.chat_mode == ChatMode.OPEN

    @pytest.mark.parametrize("reason", list(PauseReason))
    def test_paused_always_has_a_reason(self, reason):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        result = machine.pause(reason)
        machine.apply(result)

        assert machine.state.status == LiveSessionStatus.PAUSED
        assert machine.state.pause_reason is not None
        if reason == PauseReason.MODERATION:
            assert machine.state.chat_mode == ChatMode.MUTED

    def test_resume_clears_reason(self):
        machine = machine_for(status=LiveSessionStatus.PAUSED, pause_reason=PauseReason.HOST_HOLD)
        result = machine.resume()

        assert result.state.pause_reason is None
        assert result.changes["pause_reason"] is None

    def test_chat_locked_during_moderation_pause(self):
        machine = machine_for(
            status=LiveSessionStatus.PAUSED,
            pause_reason=PauseReason.MODERATION,
            chat_mode=ChatMode.MUTED,
        )
        result = machine.change_chat_mode(ChatMode.OPEN)

        assert not result.success
        assert machine.is_chat_locked

    def test_chat_unlocks_after_resume(self):
        machine = machine_for(
            status=LiveSessionStatus.PAUSED,
            pause_reason=PauseReason.MODERATION,
            chat_mode=ChatMode.MUTED,
        )
        machine.apply(machine.resume())

        assert machine.state.chat_mode == ChatMode.MUTED
        assert not machine.is_chat_locked
        assert machine.change_chat_mode(ChatMode.OPEN).success


class TestControlMode:
    def test_rejected_while_active(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, control_mode=ControlMode.HYBRID)
        result = machine.change_control_mode(ControlMode.AUTOPLAY)

        assert not result.success
        assert result.message == "Control mode can only change in waiting or paused status"
        machine.apply(result)
        assert machine.state.control_mode == ControlMode.HYBRID

    @pytest.mark.parametrize("status", [LiveSessionStatus.WAITING, LiveSessionStatus.PAUSED])
    def test_allowed_while_waiting_or_paused(self, status):
        reason = PauseReason.HOST_HOLD if status == LiveSessionStatus.PAUSED else None
        result = machine_for(status=status, pause_reason=reason).change_control_mode(ControlMode.AUTOPLAY)

        assert result.success
        assert result.state.control_mode == ControlMode.AUTOPLAY

    def test_rejected_in_draft(self):
        assert not machine_for().change_control_mode(ControlMode.AUTOPLAY).success

    def test_same_mode_rejected(self):
        result = machine_for(status=LiveSessionStatus.WAITING).change_control_mode(ControlMode.HYBRID)
        assert not result.success


class TestPlayState:
    def test_self_transition_rejected(self):
        result = machine_for(status=LiveSessionStatus.ACTIVE).change_play_state(PlayState.LOBBY)
        assert not result.success
        assert result.error == ErrorKind.CONFLICT

    def test_any_other_transition_allowed_by_default(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, play_state=PlayState.LOBBY)
        assert machine.change_play_state(PlayState.LEADERBOARD).success

    def test_draft_only_allows_lobby(self):
        machine = machine_for(play_state=PlayState.COUNTDOWN)
        assert machine.change_play_state(PlayState.LOBBY).success
        assert not machine.change_play_state(PlayState.INTRO).success

    def test_waiting_limits_play_states(self):
        machine = machine_for(status=LiveSessionStatus.WAITING)
        assert machine.change_play_state(PlayState.COUNTDOWN).success
        assert machine.change_play_state(PlayState.HOST_SEGMENT).success
        assert not machine.change_play_state(PlayState.QUESTION_ACTIVE).success

    def test_question_needs_a_showable_block(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, play_state=PlayState.INTRO)
        pending, closed = block(), block(SessionBlockStatus.CLOSED)

        ok = machine.change_play_state(PlayState.QUESTION_ACTIVE, current_block_id=pending.id, blocks=[pending, closed])
        assert ok.success
        assert ok.state.current_block_id == pending.id

        assert not machine.change_play_state(PlayState.QUESTION_ACTIVE, current_block_id=closed.id, blocks=[pending, closed]).success
        unknown = machine.change_play_state(PlayState.QUESTION_ACTIVE, current_block_id=uuid4(), blocks=[pending])
        assert unknown.error == ErrorKind.VALIDATION

    def test_final_results_needs_every_block_finished(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, play_state=PlayState.LEADERBOARD)
        finished = [block(SessionBlockStatus.COMPLETED), block(SessionBlockStatus.SKIPPED), block(SessionBlockStatus.CLOSED)]

        assert machine.change_play_state(PlayState.FINAL_RESULTS, blocks=finished).success
        assert not machine.change_play_state(PlayState.FINAL_RESULTS, blocks=finished + [block(SessionBlockStatus.ACTIVE)]).success

    def test_strict_graph(self):
        machine = machine_for(strict=True, status=LiveSessionStatus.ACTIVE, play_state=PlayState.LOBBY)
        assert not machine.change_play_state(PlayState.LEADERBOARD).success
        assert machine.change_play_state(PlayState.COUNTDOWN).success

    def test_strict_resume_cannot_return_to_lobby(self):
        machine = machine_for(strict=True, status=LiveSessionStatus.ACTIVE, play_state=PlayState.PAUSED)
        assert not machine.change_play_state(PlayState.LOBBY).success
        assert machine.change_play_state(PlayState.INTERMISSION).success


class TestTimers:
    def test_timer_advances_question(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, play_state=PlayState.QUESTION_ACTIVE)
        result = machine.advance_on_timer()

        assert result.success
        assert result.state.play_state == PlayState.QUESTION_SOFT_LOCKED

    def test_host_driven_ignores_timers(self):
        machine = machine_for(
            status=LiveSessionStatus.ACTIVE,
            play_state=PlayState.QUESTION_ACTIVE,
            control_mode=ControlMode.HOST_DRIVEN,
        )
        assert not machine.advance_on_timer().success

    def test_no_timer_while_paused(self):
        machine = machine_for(
            status=LiveSessionStatus.PAUSED,
            pause_reason=PauseReason.HOST_HOLD,
            play_state=PlayState.QUESTION_ACTIVE,
        )
        assert not machine.advance_on_timer().success

    def test_no_timer_in_lobby(self):
        assert not machine_for(status=LiveSessionStatus.ACTIVE).advance_on_timer().success


class TestBlockStatus:
    def test_activate_stamps_time(self):
        result = machine_for(status=LiveSessionStatus.ACTIVE).change_block_status(block(), SessionBlockStatus.ACTIVE, now=NOW)

        assert result.success
        assert result.changes == {"status": SessionBlockStatus.ACTIVE, "activated_at": NOW}

    def test_close_then_complete(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        closed = machine.change_block_status(block(SessionBlockStatus.ACTIVE), SessionBlockStatus.CLOSED, now=NOW)
        assert closed.changes["closed_at"] == NOW
        assert machine.change_block_status(block(SessionBlockStatus.CLOSED), SessionBlockStatus.COMPLETED).success

    def test_cannot_skip_answered_block(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        assert not machine.change_block_status(block(SessionBlockStatus.ACTIVE), SessionBlockStatus.SKIPPED, response_count=3).success
        assert machine.change_block_status(block(SessionBlockStatus.ACTIVE), SessionBlockStatus.SKIPPED).success

    @pytest.mark.parametrize("status", [SessionBlockStatus.COMPLETED, SessionBlockStatus.SKIPPED])
    def test_terminal_block_statuses(self, status):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        assert not machine.change_block_status(block(status), SessionBlockStatus.ACTIVE).success

    def test_cannot_reopen_closed_block(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        assert not machine.change_block_status(block(SessionBlockStatus.CLOSED), SessionBlockStatus.ACTIVE).success


class TestRemoteEvents:
    def event(self, payload, timestamp, event=BroadcastEventType.SESSION_STATE_CHANGE):
        return BroadcastEvent(event=event, payload=payload, timestamp=timestamp)

    def test_newer_event_is_applied(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, updated_at=NOW)
        applied = machine.apply_remote_event(self.event(
            {"status": "paused", "pause_reason": "moderation", "chat_mode": "muted"},
            NOW + timedelta(seconds=1),
        ))

        assert applied
        assert machine.state.status == LiveSessionStatus.PAUSED
        assert machine.state.pause_reason == PauseReason.MODERATION
        assert machine.state.chat_mode == ChatMode.MUTED

    def test_stale_event_is_ignored(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, updated_at=NOW)
        applied = machine.apply_remote_event(self.event({"status": "waiting"}, NOW - timedelta(seconds=5)))

        assert not applied
        assert machine.state.status == LiveSessionStatus.ACTIVE

    def test_block_events_do_not_touch_session_state(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE)
        event = self.event({"status": "closed"}, NOW, event=BroadcastEventType.BLOCK_STATE_CHANGE)
        assert not machine.apply_remote_event(event)

    def test_server_state_wins(self):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, updated_at=NOW)
        machine.apply_remote_event(self.event({"play_state": "leaderboard"}, NOW + timedelta(seconds=1)))

        fetched = LiveSessionState(status=LiveSessionStatus.ACTIVE, play_state=PlayState.INTERMISSION, updated_at=NOW + timedelta(seconds=2))
        machine.sync_from_server(fetched)
        assert machine.state == fetched

    @pytest.mark.parametrize("payload", [
        {"status": "archived"},
        {"status": "paused", "pause_reason": "coffee"},
        {"play_state": "question_active", "current_block_id": "not-a-uuid"},
    ])
    def test_malformed_event_is_ignored(self, payload):
        machine = machine_for(status=LiveSessionStatus.ACTIVE, updated_at=NOW)
        before = machine.state

        assert not machine.apply_remote_event(self.event(payload, NOW + timedelta(seconds=1)))
        assert machine.state == before
