"""
Mission API endpoints.

Provides endpoints for:
- GET /api/missions - List missions (optionally by status)
- POST /api/missions - Open a mission (409 with conflicts unless acknowledged)
- POST /api/missions/airspace - Dry-run airspace conflict check
- GET /api/missions/<id> - Single mission
- PATCH /api/missions/<id> - Edit a mission
- POST /api/missions/<id>/complete - Complete, release aircraft, book hours
- POST /api/missions/<id>/cancel - Cancel and release aircraft
- DELETE /api/missions/<id> - Administrative purge
- GET/POST /api/missions/<id>/days - Days of a multi-day mission
"""

import logging

from flask import Blueprint, current_app, jsonify, request

logger = logging.getLogger(__name__)

missions_bp = Blueprint('missions', __name__, url_prefix='/api/missions')


def _fleet():
    return current_app.config['FLEET']


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _transition_response(result):
    return jsonify(result.to_dict()), 200 if result.committed else 409


@missions_bp.route('', methods=['GET'])
def list_missions():
    """
    List missions.

    Query parameters:
    - status: active|completed|cancelled
    - sort: order key, '-field' for descending (default -created_at)
    """
    fleet = _fleet()
    status = request.args.get('status')
    if status:
        missions = fleet.missions.filter({'status': status})
    else:
        missions = fleet.missions.list(order_by=request.args.get('sort'))
    return jsonify({'missions': missions, 'count': len(missions)})


@missions_bp.route('', methods=['POST'])
def open_mission():
    data = _body()
    acknowledge = bool(data.pop('acknowledge_conflicts', False))
    result = _fleet().mission_lifecycle.open_mission(data, acknowledge_conflicts=acknowledge)
    return jsonify(result.to_dict()), 201


@missions_bp.route('/airspace', methods=['POST'])
def check_airspace():
    data = _body()
    conflicts = _fleet().mission_lifecycle.check_airspace(data, exclude_id=data.get('exclude_id'))
    return jsonify({
        'conflicts': [c.to_dict() for c in conflicts],
        'count': len(conflicts),
    })


@missions_bp.route('/<mission_id>', methods=['GET'])
def get_mission(mission_id):
    return jsonify(_fleet().missions.get(mission_id))


@missions_bp.route('/<mission_id>', methods=['PATCH'])
def update_mission(mission_id):
    patch = _body()
    acknowledge = bool(patch.pop('acknowledge_conflicts', False))
    mission = _fleet().mission_lifecycle.update_mission(mission_id, patch, acknowledge_conflicts=acknowledge)
    return jsonify(mission)


@missions_bp.route('/<mission_id>/complete', methods=['POST'])
def complete_mission(mission_id):
    body = _body()
    result = _fleet().mission_lifecycle.complete_mission(
        mission_id,
        end_time=body.get('end_time'),
        description=body.get('description'),
        force=bool(body.get('force')),
    )
    return _transition_response(result)


@missions_bp.route('/<mission_id>/cancel', methods=['POST'])
def cancel_mission(mission_id):
    result = _fleet().mission_lifecycle.cancel_mission(mission_id, force=bool(_body().get('force')))
    return _transition_response(result)


@missions_bp.route('/<mission_id>', methods=['DELETE'])
def purge_mission(mission_id):
    logger.warning(f'Purge requested for mission {mission_id}')
    report = _fleet().mission_lifecycle.purge_mission(mission_id)
    return jsonify({'purged': mission_id, 'report': report.to_dict() if report else None})


@missions_bp.route('/<mission_id>/days', methods=['GET'])
def list_days(mission_id):
    days = _fleet().day_lifecycle.days_for(mission_id)
    return jsonify({'days': days, 'count': len(days)})


@missions_bp.route('/<mission_id>/days', methods=['POST'])
def create_day(mission_id):
    body = _body()
    day = _fleet().day_lifecycle.create_day(
        mission_id,
        date=body.get('date'),
        responsible_pilot_id=body.get('responsible_pilot_id'),
        weather_summary=body.get('weather_summary', ''),
        progress_notes=body.get('progress_notes', ''),
    )
    return jsonify(day), 201
