"""
Tests for the mission lifecycle.

Tests cover:
- Opening with airspace checks, numbering and aircraft assignment
- Completion: hours, flight log, seasonal record, release failures
- Cancellation and purge
"""

from datetime import datetime, timedelta, timezone

import pytest

from fleetdesk.errors import (
    AircraftUnavailable,
    ConflictsRequireAcknowledgement,
    InvalidTransition,
    NotFound,
)
from fleetdesk.lifecycle import maintenance_claim
from fleetdesk.lifecycle.missions import flight_hours_between, next_occurrence_number


class TestHelpers:
    """Pure helpers."""

    def test_flight_hours_rounded_to_one_decimal(self) -> None:
        start = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)

        assert flight_hours_between(start, start + timedelta(minutes=95)) == 1.6

    def test_flight_hours_clamped_at_zero(self) -> None:
        start = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)

        assert flight_hours_between(start, start - timedelta(hours=1)) == 0.0

    def test_occurrence_number_continues_sequence_per_unit(self) -> None:
        missions = [
            {'occurrence_number': '2025ARP1GB00007'},
            {'occurrence_number': '2025ARP1GB00003'},
            {'occurrence_number': '2025ARP2GB00042'},
            {'occurrence_number': '2024ARP1GB00099'},
        ]

        assert next_occurrence_number(missions, '1º GB', year=2025) == '2025ARP1GB00008'
        assert next_occurrence_number([], None, year=2025) == '2025ARPHQ00001'


class TestOpenMission:
    """Opening a mission."""

    def test_open_assigns_aircraft_and_numbers_mission(self, seeded, make_mission) -> None:
        result = seeded.mission_lifecycle.open_mission(make_mission())

        mission = result.mission
        assert mission['status'] == 'active'
        assert mission['occurrence_number'].endswith('ARP1GB00001')
        assert result.status_updated is True
        assert seeded.aircraft.get('ac-1')['status'] == 'in_operation'

    def test_conflict_blocks_without_acknowledgement(self, seeded, remote, make_mission) -> None:
        seeded.mission_lifecycle.open_mission(make_mission())

        with pytest.raises(ConflictsRequireAcknowledgement) as exc_info:
            seeded.mission_lifecycle.open_mission(make_mission(aircraft_id='ac-2', pilot_id='p-2'))

        assert len(exc_info.value.conflicts) == 1
        assert len(remote.rows('missions')) == 1

    def test_acknowledged_conflict_notifies_other_pilot(self, seeded, make_mission) -> None:
        first = seeded.mission_lifecycle.open_mission(make_mission()).mission

        result = seeded.mission_lifecycle.open_mission(
            make_mission(name='Second team', aircraft_id='ac-2', pilot_id='p-2', radius=200),
            acknowledge_conflicts=True,
        )

        assert [c.mission_id for c in result.conflicts] == [first['id']]
        notice = result.notices[0]
        assert notice['target_pilot_id'] == 'p-1'
        assert notice['new_mission_name'] == 'Second team'
        assert notice['new_pilot_name'] == 'Bruno Lima'
        assert notice['new_mission_radius'] == 200
        assert notice['acknowledged'] is False

    def test_grounded_aircraft_refused_before_any_write(self, seeded, remote, make_mission) -> None:
        seeded.aircraft_lifecycle.ground('ac-1', maintenance_claim('e-1'))

        with pytest.raises(AircraftUnavailable):
            seeded.mission_lifecycle.open_mission(make_mission())

        assert remote.rows('missions') == []

    def test_status_write_refused_is_reported(self, seeded, remote, make_mission) -> None:
        remote.denied_ids.add('ac-1')

        result = seeded.mission_lifecycle.open_mission(make_mission())

        assert result.status_updated is False
        assert 'permission' in result.error
        assert seeded.ledger.claims_for('ac-1') == {f'mission:{result.mission["id"]}'}

    def test_refused_conflict_notice_is_reported_not_raised(self, seeded, remote, make_mission) -> None:
        seeded.mission_lifecycle.open_mission(make_mission())
        remote.denied.add(('insert', 'conflict_notices'))

        result = seeded.mission_lifecycle.open_mission(
            make_mission(name='Second team', aircraft_id='ac-2', pilot_id='p-2'),
            acknowledge_conflicts=True,
        )

        assert len(remote.rows('missions')) == 2
        assert result.mission['status'] == 'active'
        assert result.notices == []
        assert list(result.notice_errors) == ['p-1']
        assert result.remediation
        assert result.to_dict()['notice_errors']['p-1']
        assert seeded.aircraft.get('ac-2')['status'] == 'in_operation'

    def test_name_required(self, seeded, make_mission) -> None:
        with pytest.raises(ValueError):
            seeded.mission_lifecycle.open_mission(make_mission(name=''))

    def test_moving_mission_onto_another_requires_acknowledgement(self, seeded, make_mission) -> None:
        seeded.mission_lifecycle.open_mission(make_mission())
        far = seeded.mission_lifecycle.open_mission(
            make_mission(aircraft_id='ac-2', pilot_id='p-2', latitude=-25.5284)
        ).mission

        with pytest.raises(ConflictsRequireAcknowledgement):
            seeded.mission_lifecycle.update_mission(far['id'], {'latitude': -25.4284})

        moved = seeded.mission_lifecycle.update_mission(far['id'], {'radius': 50})
        assert moved['radius'] == 50


class TestCompleteMission:
    """Completion books hours and releases the aircraft."""

    def test_complete_books_hours_and_releases(self, seeded, make_mission) -> None:
        start = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
        mission = seeded.mission_lifecycle.open_mission(make_mission(start_time=start.isoformat())).mission

        result = seeded.mission_lifecycle.complete_mission(
            mission['id'], end_time=(start + timedelta(minutes=95)).isoformat()
        )

        assert result.committed is True
        assert result.record['status'] == 'completed'
        assert result.record['flight_hours'] == 1.6
        aircraft = seeded.aircraft.get('ac-1')
        assert aircraft['status'] == 'available'
        assert aircraft['total_flight_hours'] == 11.6

    def test_complete_appends_flight_log(self, seeded, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission

        seeded.mission_lifecycle.complete_mission(mission['id'])

        logs = seeded.flight_logs.filter({'mission_id': mission['id']})
        assert len(logs) == 1
        assert logs[0]['aircraft_id'] == 'ac-1'
        assert logs[0]['flight_hours'] == 2.0

    def test_release_refused_keeps_mission_active(self, seeded, remote, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        remote.denied_ids.add('ac-1')

        result = seeded.mission_lifecycle.complete_mission(mission['id'])

        assert result.committed is False
        assert result.report.failed_ids == ['ac-1']
        assert result.remediation
        assert seeded.missions.get(mission['id'])['status'] == 'active'
        assert seeded.flight_logs.list() == []

    def test_forced_completion_is_flagged_inconsistent(self, seeded, remote, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        remote.denied_ids.add('ac-1')

        result = seeded.mission_lifecycle.complete_mission(mission['id'], force=True)

        assert result.committed is True
        assert result.inconsistent is True
        assert result.record['status'] == 'completed'
        assert seeded.ledger.claims_for('ac-1') == set()

    def test_refused_mission_write_restores_claim_and_retry_books_hours_once(
        self, seeded, remote, make_mission
    ) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        remote.denied.add(('update', 'missions'))

        refused = seeded.mission_lifecycle.complete_mission(mission['id'])

        assert refused.committed is False
        assert [f.step for f in refused.write_failures] == ['mission']
        assert refused.write_failures[0].reason.value == 'permission_denied'
        assert refused.remediation
        assert seeded.ledger.claims_for('ac-1') == {f'mission:{mission["id"]}'}
        aircraft = seeded.aircraft.get('ac-1')
        assert aircraft['status'] == 'in_operation'
        assert aircraft['total_flight_hours'] == 10.0
        assert seeded.flight_logs.list() == []

        remote.denied.discard(('update', 'missions'))
        result = seeded.mission_lifecycle.complete_mission(mission['id'])

        assert result.committed is True
        assert result.write_failures == []
        aircraft = seeded.aircraft.get('ac-1')
        assert aircraft['status'] == 'available'
        assert aircraft['total_flight_hours'] == 12.0
        assert len(seeded.flight_logs.filter({'mission_id': mission['id']})) == 1

    def test_refused_flight_log_is_reported(self, seeded, remote, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        remote.denied.add(('insert', 'flight_logs'))

        result = seeded.mission_lifecycle.complete_mission(mission['id'])

        assert result.committed is True
        assert result.inconsistent is True
        assert result.remediation
        assert [f.step for f in result.write_failures] == ['flight_log']
        assert result.to_dict()['write_failures'][0]['reason'] == 'permission_denied'
        assert result.extra['flight_log'] is None
        assert seeded.aircraft.get('ac-1')['total_flight_hours'] == 12.0

    def test_only_active_missions_complete(self, seeded, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        seeded.mission_lifecycle.complete_mission(mission['id'])

        with pytest.raises(InvalidTransition):
            seeded.mission_lifecycle.complete_mission(mission['id'])

    def test_seasonal_mission_writes_seasonal_record(self, seeded, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission(is_seasonal_op=True)).mission

        seeded.mission_lifecycle.complete_mission(mission['id'])

        entries = seeded.seasonal_flights.filter({'mission_id': mission['id']})
        assert len(entries) == 1
        assert 115 <= entries[0]['flight_duration'] <= 125

    def test_seasonal_failure_does_not_block_completion(self, seeded, remote, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission(is_seasonal_op=True)).mission
        remote.denied.add(('insert', 'seasonal_flights'))

        result = seeded.mission_lifecycle.complete_mission(mission['id'])

        assert result.committed is True
        assert result.record['status'] == 'completed'


class TestCancelAndPurge:
    """Cancellation and administrative purge."""

    def test_cancel_releases_without_hours(self, seeded, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission

        result = seeded.mission_lifecycle.cancel_mission(mission['id'])

        assert result.record['status'] == 'cancelled'
        aircraft = seeded.aircraft.get('ac-1')
        assert aircraft['status'] == 'available'
        assert aircraft['total_flight_hours'] == 10.0

    def test_refused_cancel_keeps_aircraft_claimed(self, seeded, remote, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission()).mission
        remote.denied.add(('update', 'missions'))

        result = seeded.mission_lifecycle.cancel_mission(mission['id'])

        assert result.committed is False
        assert result.write_failures[0].step == 'mission'
        assert seeded.aircraft.get('ac-1')['status'] == 'in_operation'
        assert seeded.missions.get(mission['id'])['status'] == 'active'

    def test_purge_deletes_mission_and_days(self, seeded, make_mission) -> None:
        mission = seeded.mission_lifecycle.open_mission(make_mission(is_multi_day=True)).mission
        day = seeded.day_lifecycle.create_day(mission['id'], '2025-03-01', 'p-1')

        seeded.mission_lifecycle.purge_mission(mission['id'])

        with pytest.raises(NotFound):
            seeded.missions.get(mission['id'])
        with pytest.raises(NotFound):
            seeded.mission_days.get(day['id'])
        assert seeded.aircraft.get('ac-1')['status'] == 'available'
