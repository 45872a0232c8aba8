"""
Mission-day API endpoints.

Provides endpoints for:
- GET /api/days/<id> - Day with its aircraft and personnel
- POST /api/days/<id>/aircraft - Allocate an aircraft
- POST /api/days/<id>/personnel - Allocate a pilot or observer
- PUT /api/days/<id>/notes - Save progress notes
- POST /api/days/<id>/close - Release aircraft and close the day
- DELETE /api/days/<id> - Delete the day and its links
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from fleetdesk.entities import PersonnelRole

logger = logging.getLogger(__name__)

days_bp = Blueprint('days', __name__, url_prefix='/api/days')


def _fleet():
    return current_app.config['FLEET']


def _body() -> dict:
    return request.get_json(silent=True) or {}


@days_bp.route('/<day_id>', methods=['GET'])
def get_day(day_id):
    fleet = _fleet()
    day = fleet.mission_days.get(day_id)
    return jsonify({
        'day': day,
        'aircraft': fleet.day_lifecycle.aircraft_links(day_id),
        'personnel': fleet.day_lifecycle.personnel_links(day_id),
    })


@days_bp.route('/<day_id>/aircraft', methods=['POST'])
def allocate_aircraft(day_id):
    aircraft_id = _body().get('aircraft_id')
    if not aircraft_id:
        raise ValueError('aircraft_id is required')
    result = _fleet().day_lifecycle.allocate_aircraft(day_id, aircraft_id)
    return jsonify(result.to_dict()), 201


@days_bp.route('/<day_id>/personnel', methods=['POST'])
def allocate_personnel(day_id):
    body = _body()
    if not body.get('pilot_id'):
        raise ValueError('pilot_id is required')
    link = _fleet().day_lifecycle.allocate_personnel(
        day_id,
        body['pilot_id'],
        role=body.get('role') or PersonnelRole.OBSERVER,
    )
    return jsonify(link), 201


@days_bp.route('/<day_id>/notes', methods=['PUT'])
def save_notes(day_id):
    day, notice = _fleet().day_lifecycle.save_notes(day_id, _body().get('notes', ''))
    return jsonify({'day': day, 'notice': notice})


@days_bp.route('/<day_id>/close', methods=['POST'])
def close_day(day_id):
    result = _fleet().day_lifecycle.close_day(day_id, force=bool(_body().get('force')))
    return jsonify(result.to_dict()), 200 if result.committed else 409


@days_bp.route('/<day_id>', methods=['DELETE'])
def delete_day(day_id):
    _fleet().day_lifecycle.delete_day(day_id)
    return jsonify({'deleted': day_id})
