"""Tests for core/focus_session.py: FocusSessionMachine

Covers transitions, per-minute ledger upserts with dedupe, exhaustion and
wall-clock synchronisation that excludes paused time.
"""

from core.models import FocusTask, ResultCode, SessionState


class TestTransitions:
    """Idle -> Running <-> Paused -> Completed | Abandoned."""

    def test_start_from_idle(self, focus_machine, sample_task):
        result = focus_machine.start(sample_task)

        assert result.success
        assert focus_machine.state == SessionState.RUNNING
        assert focus_machine.session.remaining_minutes == 25

    def test_second_start_is_rejected_without_overwriting(self, focus_machine, sample_task, video_task):
        first = focus_machine.start(sample_task).data

        result = focus_machine.start(video_task)

        assert not result.success
        assert result.code == ResultCode.ALREADY_ACTIVE
        assert focus_machine.session is first

    def test_pause_and_resume(self, focus_machine, sample_task):
        focus_machine.start(sample_task)

        assert focus_machine.pause().success
        assert focus_machine.state == SessionState.PAUSED
        assert focus_machine.session.paused

        assert focus_machine.resume().success
        assert focus_machine.state == SessionState.RUNNING
        assert not focus_machine.session.paused

    def test_pause_and_resume_are_noops_outside_running_paused(self, focus_machine, sample_task):
        assert focus_machine.pause().code == ResultCode.NOT_ACTIVE
        assert focus_machine.resume().code == ResultCode.NOT_ACTIVE

        focus_machine.start(sample_task)
        assert focus_machine.resume().code == ResultCode.NOT_ACTIVE

        focus_machine.pause()
        assert focus_machine.pause().code == ResultCode.NOT_ACTIVE

    def test_end_confirmed_completes(self, focus_machine, sample_task):
        focus_machine.start(sample_task)

        result = focus_machine.end(confirm_complete=True)

        assert result.data.session_state == SessionState.COMPLETED
        assert focus_machine.state == SessionState.IDLE
        assert focus_machine.last_session is result.data

    def test_end_unconfirmed_abandons_and_keeps_minutes(self, focus_machine, sample_task, ledger):
        focus_machine.start(sample_task)
        focus_machine.tick()
        focus_machine.tick()

        result = focus_machine.end(confirm_complete=False)

        assert result.data.session_state == SessionState.ABANDONED
        assert ledger.minutes_for_session(result.data.id) == 2

    def test_end_without_session(self, focus_machine):
        assert focus_machine.end(True).code == ResultCode.NOT_ACTIVE

    def test_new_session_after_end(self, focus_machine, sample_task):
        focus_machine.start(sample_task)
        focus_machine.end(True)

        assert focus_machine.start(sample_task).success


class TestTicks:
    """Each tick upserts exactly one minute into today's record."""

    def test_tick_decrements_and_records(self, focus_machine, sample_task, ledger):
        focus_machine.start(sample_task)

        assert focus_machine.tick() is True

        assert focus_machine.session.remaining_minutes == 24
        assert len(ledger.records) == 1
        assert ledger.records[0].duration_minutes == 1

    def test_same_minute_index_counts_once(self, focus_machine, sample_task, ledger):
        session = focus_machine.start(sample_task).data

        assert focus_machine.tick(minute_index=0) is True
        assert focus_machine.tick(minute_index=0) is False

        assert ledger.minutes_for_session(session.id) == 1
        assert session.remaining_minutes == 24

    def test_ticks_grow_one_record(self, focus_machine, sample_task, ledger):
        focus_machine.start(sample_task)
        for _ in range(5):
            focus_machine.tick()

        assert len(ledger.records) == 1
        assert ledger.records[0].duration_minutes == 5
        assert ledger.records[0].minute_indices == [0, 1, 2, 3, 4]

    def test_tick_while_paused_is_ignored(self, focus_machine, sample_task, ledger):
        focus_machine.start(sample_task)
        focus_machine.pause()

        assert focus_machine.tick() is False
        assert len(ledger) == 0

    def test_exhausted_awaits_confirmation(self, focus_machine, ledger):
        task = FocusTask(title="Flashcards", skill_name="Spanish", planned_duration_minutes=3)
        focus_machine.start(task)
        for _ in range(3):
            focus_machine.tick()

        assert focus_machine.is_exhausted
        assert focus_machine.state == SessionState.RUNNING
        assert focus_machine.tick() is False
        assert ledger.minutes_for_session(focus_machine.session.id) == 3

        assert focus_machine.end(True).success

    def test_paused_exhausted_session_still_active(self, focus_machine):
        focus_machine.start(FocusTask(title="Recall", skill_name="Bio", planned_duration_minutes=1))
        focus_machine.tick()
        focus_machine.pause()

        assert focus_machine.is_exhausted
        assert focus_machine.is_active

    def test_minute_index_past_plan_is_ignored(self, focus_machine, sample_task, ledger):
        focus_machine.start(sample_task)

        assert focus_machine.tick(minute_index=25) is False
        assert len(ledger) == 0


class TestClockSync:
    """Elapsed minutes are derived from timestamps, not timer fires."""

    def test_sync_credits_elapsed_minutes(self, focus_machine, sample_task, clock, ledger):
        session = focus_machine.start(sample_task).data
        clock.advance(minutes=7, seconds=30)

        assert focus_machine.sync_with_clock() == 7
        assert session.remaining_minutes == 18

    def test_sync_twice_does_not_double_count(self, focus_machine, sample_task, clock, ledger):
        session = focus_machine.start(sample_task).data
        clock.advance(minutes=4)
        focus_machine.sync_with_clock()

        assert focus_machine.sync_with_clock() == 0
        assert ledger.minutes_for_session(session.id) == 4

    def test_sync_excludes_paused_time(self, focus_machine, sample_task, clock, ledger):
        session = focus_machine.start(sample_task).data
        clock.advance(minutes=3)
        focus_machine.sync_with_clock()
        focus_machine.pause()
        clock.advance(minutes=30)
        focus_machine.resume()
        clock.advance(minutes=2)

        focus_machine.sync_with_clock()

        assert ledger.minutes_for_session(session.id) == 5
        assert session.remaining_minutes == 20

    def test_sync_while_paused_counts_only_active_time(self, focus_machine, sample_task, clock):
        focus_machine.start(sample_task)
        clock.advance(minutes=2)
        focus_machine.pause()
        clock.advance(minutes=10)

        assert focus_machine.sync_with_clock() == 2
        assert focus_machine.session.remaining_minutes == 23

    def test_sync_caps_at_planned_duration(self, focus_machine, sample_task, clock):
        focus_machine.start(sample_task)
        clock.advance(minutes=90)

        assert focus_machine.sync_with_clock() == 25
        assert focus_machine.is_exhausted

    def test_elapsed_minutes_idle(self, focus_machine):
        assert focus_machine.elapsed_minutes() == 0
