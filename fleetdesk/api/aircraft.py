"""
Fleet and maintenance API endpoints.

Provides endpoints for:
- GET /api/aircraft - List aircraft with their ledger claims
- POST /api/aircraft - Register an aircraft
- PATCH /api/aircraft/<id> - Edit aircraft details
- POST /api/aircraft/<id>/reset - Operator status correction
- GET /api/maintenance - List maintenance events
- POST /api/maintenance - Open a maintenance event
- POST /api/maintenance/<id>/start - Start work
- POST /api/maintenance/<id>/complete - Complete and return to service
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from fleetdesk.entities import AircraftStatus

logger = logging.getLogger(__name__)

aircraft_bp = Blueprint('aircraft', __name__, url_prefix='/api/aircraft')
maintenance_bp = Blueprint('maintenance', __name__, url_prefix='/api/maintenance')

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _fleet():
    return current_app.config['FLEET']


def _transition_response(result):
    return jsonify(result.to_dict()), 200 if result.committed else 409


@aircraft_bp.route('', methods=['GET'])
def list_aircraft():
    """
    List the fleet.

    Each aircraft carries its current ledger claims so the front end can
    show why an aircraft is busy.
    """
    fleet = _fleet()
    records = fleet.aircraft.list(order_by=request.args.get('sort'))
    return jsonify({
        'aircraft': [
            {**record, 'claims': sorted(fleet.ledger.claims_for(record['id']))}
            for record in records
        ],
        'count': len(records),
    })


@aircraft_bp.route('', methods=['POST'])
def create_aircraft():
    data = request.get_json(silent=True) or {}
    if not data.get('prefix'):
        raise ValueError('Aircraft prefix is required')
    data['status'] = AircraftStatus.AVAILABLE.value
    data.setdefault('total_flight_hours', 0)
    return jsonify(_fleet().aircraft.create(data)), 201


@aircraft_bp.route('/<aircraft_id>', methods=['PATCH'])
def update_aircraft(aircraft_id):
    """Edit details. Status is owned by the lifecycles and cannot be patched here."""
    patch = request.get_json(silent=True) or {}
    if 'status' in patch:
        raise ValueError('Aircraft status is derived from missions and maintenance; use /reset to correct it')
    return jsonify(_fleet().aircraft.update(aircraft_id, patch))


@aircraft_bp.route('/<aircraft_id>/reset', methods=['POST'])
def reset_aircraft(aircraft_id):
    """Drop every claim on an aircraft and mark it available."""
    logger.warning(f'Operator reset requested for aircraft {aircraft_id}')
    return jsonify(_fleet().aircraft_lifecycle.reset(aircraft_id))


# -------------------------------------------------------------------------
# Maintenance
# -------------------------------------------------------------------------

@maintenance_bp.route('', methods=['GET'])
def list_maintenance():
    fleet = _fleet()
    aircraft_id = request.args.get('aircraft_id')
    if aircraft_id:
        events = fleet.maintenance_events.filter({'aircraft_id': aircraft_id})
    else:
        events = fleet.maintenance_events.list()
    return jsonify({'events': events, 'count': len(events)})


@maintenance_bp.route('', methods=['POST'])
def open_maintenance():
    """
    Open a maintenance event.

    Accepts JSON, or multipart form data with an optional 'log_file' part
    (the flight log of an in-flight incident).
    """
    log_file = None
    filename = None
    if request.files:
        data = request.form.to_dict()
        data['in_flight_incident'] = data.get('in_flight_incident', '').lower() in TRUE_VALUES
        upload = request.files.get('log_file')
        if upload is not None:
            log_file = upload.read()
            filename = upload.filename
    else:
        data = request.get_json(silent=True) or {}

    event = _fleet().maintenance_lifecycle.open_event(data, log_file=log_file, filename=filename)
    return jsonify(event), 201


@maintenance_bp.route('/<event_id>/start', methods=['POST'])
def start_maintenance(event_id):
    return jsonify(_fleet().maintenance_lifecycle.start_work(event_id))


@maintenance_bp.route('/<event_id>/complete', methods=['POST'])
def complete_maintenance(event_id):
    body = request.get_json(silent=True) or {}
    result = _fleet().maintenance_lifecycle.complete_event(event_id, force=bool(body.get('force')))
    return _transition_response(result)
