"""
Tests for the HTTP API.

Drives the Flask app through its test client with a fleet wired to the
in-memory fake remote.
"""

import io

import pytest

from fleetdesk.app import create_app


@pytest.fixture
def client(seeded):
    app = create_app(fleet=seeded, start_refresher=False)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def open_mission(client, make_mission):
    response = client.post('/api/missions', json=make_mission(is_multi_day=True))
    assert response.status_code == 201
    return response.get_json()['mission']


class TestHealthAndStatus:
    """Operational endpoints."""

    def test_health(self, client) -> None:
        assert client.get('/health').get_json() == {'status': 'ok'}

    def test_status_lists_every_store(self, client) -> None:
        data = client.get('/api/status').get_json()

        assert data['remote_configured'] is True
        assert 'Mission' in data['stores']
        assert data['refresher']['running'] is False

    def test_pending_operations_visible(self, client, remote) -> None:
        remote.offline = True
        client.post('/api/aircraft', json={'prefix': 'HARPIA 09'})

        data = client.get('/api/status/pending').get_json()

        assert data['count'] == 1
        assert data['reconcile']['replayed'] == 0

    def test_unknown_route_is_json_404(self, client) -> None:
        response = client.get('/api/nothing')

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Not found'}


class TestFleetEndpoints:
    """Aircraft and maintenance."""

    def test_list_aircraft_shows_claims(self, client, open_mission) -> None:
        aircraft = {a['id']: a for a in client.get('/api/aircraft').get_json()['aircraft']}

        assert aircraft['ac-1']['claims'] == [f'mission:{open_mission["id"]}']
        assert aircraft['ac-2']['claims'] == []

    def test_status_cannot_be_patched_directly(self, client) -> None:
        response = client.patch('/api/aircraft/ac-1', json={'status': 'available'})

        assert response.status_code == 400

    def test_immutable_field_rejected(self, client) -> None:
        response = client.patch('/api/aircraft/ac-1', json={'id': 'other'})

        assert response.status_code == 400
        assert response.get_json()['fields'] == ['id']

    def test_maintenance_with_uploaded_log(self, client) -> None:
        response = client.post(
            '/api/maintenance',
            data={
                'aircraft_id': 'ac-2',
                'maintenance_type': 'camera',
                'in_flight_incident': 'true',
                'log_file': (io.BytesIO(b'<kml/>'), 'incident.kml'),
            },
            content_type='multipart/form-data',
        )

        assert response.status_code == 201
        event = response.get_json()
        assert event['log_file_url'].startswith('file://')
        aircraft = {a['id']: a for a in client.get('/api/aircraft').get_json()['aircraft']}
        assert aircraft['ac-2']['claims'] == [f'maintenance:{event["id"]}']

    def test_grounding_aircraft_in_operation_is_conflict(self, client, open_mission) -> None:
        response = client.post('/api/maintenance', json={'aircraft_id': 'ac-1', 'maintenance_type': 'corrective'})

        assert response.status_code == 409


class TestMissionEndpoints:
    """Mission workflows."""

    def test_conflict_returns_409_with_list(self, client, open_mission, make_mission) -> None:
        response = client.post('/api/missions', json=make_mission(aircraft_id='ac-2', pilot_id='p-2'))

        assert response.status_code == 409
        conflicts = response.get_json()['conflicts']
        assert conflicts[0]['mission_id'] == open_mission['id']

    def test_acknowledged_conflict_creates_notice(self, client, open_mission, make_mission) -> None:
        response = client.post(
            '/api/missions',
            json={**make_mission(aircraft_id='ac-2', pilot_id='p-2'), 'acknowledge_conflicts': True},
        )

        assert response.status_code == 201
        notices = client.get('/api/conflicts?pilot_id=p-1').get_json()['notices']
        assert len(notices) == 1

        ack = client.post(f'/api/conflicts/{notices[0]["id"]}/ack')
        assert ack.get_json()['acknowledged'] is True
        assert client.get('/api/conflicts?pilot_id=p-1').get_json()['count'] == 0

    def test_refused_notice_still_opens_mission(self, client, remote, open_mission, make_mission) -> None:
        remote.denied.add(('insert', 'conflict_notices'))

        response = client.post(
            '/api/missions',
            json={**make_mission(aircraft_id='ac-2', pilot_id='p-2'), 'acknowledge_conflicts': True},
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body['mission']['status'] == 'active'
        assert 'p-1' in body['notice_errors']
        assert body['remediation']

    def test_airspace_dry_run(self, client, open_mission, make_mission) -> None:
        data = client.post('/api/missions/airspace', json=make_mission()).get_json()

        assert data['count'] == 1

    def test_complete_mission(self, client, open_mission) -> None:
        response = client.post(f'/api/missions/{open_mission["id"]}/complete', json={})

        assert response.status_code == 200
        body = response.get_json()
        assert body['committed'] is True
        assert body['record']['status'] == 'completed'
        assert body['flight_log']['mission_id'] == open_mission['id']

    def test_refused_completion_is_409_with_report(self, client, remote, open_mission) -> None:
        remote.denied_ids.add('ac-1')

        response = client.post(f'/api/missions/{open_mission["id"]}/complete', json={})

        assert response.status_code == 409
        body = response.get_json()
        assert body['committed'] is False
        assert body['report']['failures'][0]['reason'] == 'permission_denied'
        assert body['remediation']

    def test_unknown_mission_is_404(self, client) -> None:
        assert client.get('/api/missions/ghost').status_code == 404

    def test_permission_denied_is_403(self, client, remote, make_mission) -> None:
        remote.denied.add(('insert', 'missions'))

        response = client.post('/api/missions', json=make_mission())

        assert response.status_code == 403
        assert response.get_json()['remediation']


class TestDayEndpoints:
    """Multi-day workflow over HTTP."""

    def test_day_workflow(self, client, open_mission) -> None:
        created = client.post(
            f'/api/missions/{open_mission["id"]}/days',
            json={'date': '2025-03-01', 'responsible_pilot_id': 'p-1'},
        )
        assert created.status_code == 201
        day_id = created.get_json()['id']

        allocated = client.post(f'/api/days/{day_id}/aircraft', json={'aircraft_id': 'ac-2'})
        assert allocated.get_json()['status_updated'] is True
        client.post(f'/api/days/{day_id}/personnel', json={'pilot_id': 'p-2', 'role': 'observer'})

        notes = client.put(f'/api/days/{day_id}/notes', json={'notes': 'Sector 2 swept'}).get_json()
        assert notes['day']['status'] == 'open'
        assert notes['notice']

        detail = client.get(f'/api/days/{day_id}').get_json()
        assert len(detail['aircraft']) == 1
        assert len(detail['personnel']) == 1

        closed = client.post(f'/api/days/{day_id}/close', json={})
        assert closed.status_code == 200
        assert closed.get_json()['record']['status'] == 'closed'

    def test_day_requires_pilot(self, client, open_mission) -> None:
        response = client.post(f'/api/missions/{open_mission["id"]}/days', json={'date': '2025-03-01'})

        assert response.status_code == 400

    def test_blocked_close_is_409(self, client, remote, open_mission) -> None:
        day_id = client.post(
            f'/api/missions/{open_mission["id"]}/days',
            json={'date': '2025-03-01', 'responsible_pilot_id': 'p-1'},
        ).get_json()['id']
        client.post(f'/api/days/{day_id}/aircraft', json={'aircraft_id': 'ac-2'})
        remote.denied_ids.add('ac-2')

        blocked = client.post(f'/api/days/{day_id}/close', json={})
        assert blocked.status_code == 409
        assert blocked.get_json()['report']['failures'][0]['aircraft_id'] == 'ac-2'

        forced = client.post(f'/api/days/{day_id}/close', json={'force': True})
        assert forced.status_code == 200
        assert forced.get_json()['inconsistent'] is True

    def test_closed_day_notes_and_unknown_delete(self, client, open_mission) -> None:
        day_id = client.post(
            f'/api/missions/{open_mission["id"]}/days',
            json={'date': '2025-03-01', 'responsible_pilot_id': 'p-1'},
        ).get_json()['id']
        client.post(f'/api/days/{day_id}/close', json={})

        late = client.put(f'/api/days/{day_id}/notes', json={'notes': 'Late entry'})
        assert late.status_code == 409

        assert client.delete('/api/days/ghost-day').status_code == 404
