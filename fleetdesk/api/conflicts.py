"""
Conflict notice API endpoints.

Provides endpoints for:
- GET /api/conflicts?pilot_id=<id> - Unacknowledged notices for a pilot
- POST /api/conflicts/<id>/ack - Acknowledge a notice
"""

from flask import Blueprint, current_app, jsonify, request

conflicts_bp = Blueprint('conflicts', __name__, url_prefix='/api/conflicts')


@conflicts_bp.route('', methods=['GET'])
def pending_notices():
    pilot_id = request.args.get('pilot_id')
    if not pilot_id:
        raise ValueError('pilot_id is required')
    notices = current_app.config['FLEET'].notifier.pending_for(pilot_id)
    return jsonify({'notices': notices, 'count': len(notices)})


@conflicts_bp.route('/<notice_id>/ack', methods=['POST'])
def acknowledge_notice(notice_id):
    return jsonify(current_app.config['FLEET'].notifier.acknowledge(notice_id))
