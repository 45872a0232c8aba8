"""
FleetDesk Flask Application.

Main entry point for the web application. Initializes:
- Fleet (local mirror, remote adapter, entity stores, lifecycles)
- Allocation ledger from stored missions, days and maintenance
- Background mirror refresh
- API routes and JSON error handlers

Usage:
    python -m fleetdesk.app

Or with gunicorn:
    gunicorn 'fleetdesk.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from fleetdesk.config import config
from fleetdesk.errors import (
    ConflictsRequireAcknowledgement,
    InvalidPatch,
    LifecycleError,
    NotFound,
    PermissionDenied,
    RemoteError,
)
from fleetdesk.fleet import Fleet
from fleetdesk.api import aircraft_bp, conflicts_bp, days_bp, maintenance_bp, missions_bp, status_bp

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(fleet: Optional[Fleet] = None, start_refresher: bool = True) -> Flask:
    """
    Application factory for Flask.

    Args:
        fleet: Pre-built fleet (tests pass one wired to a fake remote).
               Built from configuration when None.
        start_refresher: Whether to start the background mirror refresh.
                         Set to False for testing.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if fleet is None:
        logger.info('Initializing fleet...')
        fleet = Fleet.from_config()
    app.config['FLEET'] = fleet

    try:
        fleet.rebuild_ledger()
    except RemoteError as e:
        logger.error(f'Allocation ledger rebuild failed: {e}')

    # Register API blueprints
    app.register_blueprint(aircraft_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(missions_bp)
    app.register_blueprint(days_bp)
    app.register_blueprint(conflicts_bp)
    app.register_blueprint(status_bp)

    if start_refresher:
        fleet.refresher.start_background()
        logger.info(f'Mirror refresh started (interval={fleet.refresher.interval}s)')

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(PermissionDenied)
    def permission_denied(e):
        return jsonify({'error': str(e), 'remediation': e.remediation}), 403

    @app.errorhandler(NotFound)
    def record_not_found(e):
        return jsonify({'error': str(e), 'entity': e.entity, 'id': e.record_id}), 404

    @app.errorhandler(InvalidPatch)
    def invalid_patch(e):
        return jsonify({'error': str(e), 'fields': e.fields}), 400

    @app.errorhandler(ValueError)
    def invalid_value(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(ConflictsRequireAcknowledgement)
    def conflicts_found(e):
        return jsonify({
            'error': str(e),
            'conflicts': [c.to_dict() for c in e.conflicts],
        }), 409

    @app.errorhandler(LifecycleError)
    def lifecycle_refused(e):
        return jsonify({'error': str(e)}), 409

    @app.errorhandler(RemoteError)
    def remote_error(e):
        logger.error(f'Remote error: {e}')
        return jsonify({'error': str(e)}), 502

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))
    logger.info(f'Starting FleetDesk on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate refresh threads
    )


if __name__ == '__main__':
    run_development_server()
