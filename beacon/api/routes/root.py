from flask import Blueprint, jsonify, current_app

from ... import __version__

# Define the Blueprint
root_bp = Blueprint('root_bp', __name__)

@root_bp.route('/')
def service_info():
    """Return basic API info and the main entry points."""
    API_VERSION = current_app.config.get('API_VERSION', 'v1')

    return jsonify({
        "message": "Beacon Analytics API Server",
        "version": __version__,
        "api_version": API_VERSION,
        "collect": f"/api/{API_VERSION}/analytics/collect",
        "health": f"/api/{API_VERSION}/health"
    })
