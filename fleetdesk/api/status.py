"""
Status API endpoints.

Provides endpoints for:
- GET /api/status - Store, mirror and refresher statistics
- GET /api/status/pending - Offline operations not yet on the remote
- GET /api/status/diagnose - Remote connectivity check
- POST /api/status/refresh - Run one mirror refresh pass now
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__, url_prefix='/api/status')


def _fleet():
    return current_app.config['FLEET']


@status_bp.route('', methods=['GET'])
def get_status():
    start_time = time.perf_counter()
    fleet = _fleet()

    stores = {name: store.stats for name, store in fleet.stores.items()}
    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'remote_configured': fleet.remote is not None,
        'stores': stores,
        'mirror': fleet.mirror.stats,
        'refresher': fleet.refresher.stats,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@status_bp.route('/pending', methods=['GET'])
def get_pending():
    fleet = _fleet()
    entity = request.args.get('entity')
    operations = fleet.mirror.pending_operations(entity=entity)
    return jsonify({
        'operations': operations,
        'count': len(operations),
        'reconcile': fleet.reconciler.drain().to_dict(),
    })


@status_bp.route('/diagnose', methods=['GET'])
def diagnose():
    return jsonify(_fleet().diagnose())


@status_bp.route('/refresh', methods=['POST'])
def refresh_now():
    fleet = _fleet()
    total = fleet.refresher.refresh_once()
    return jsonify({'records': total, 'refresher': fleet.refresher.stats})
