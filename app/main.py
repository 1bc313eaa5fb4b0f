import argparse
import logging
from pathlib import Path
from typing import Optional

# Import configuration management
import sys
sys.path.append(str(Path(__file__).parent.parent))
from config_manager import ConfigManager

from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from recommendation_service import Engine, EngineError, build_engine, setup_logging

from app.access_control.factory import create_access_control_module
from app.catalog.factory import create_catalog_module
from app.event_tracking.factory import create_event_tracking_module
from app.metrics_report.factory import create_metrics_report_module
from app.recommendations.factory import create_recommendations_module

_LOG = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

# Load configuration
config_manager = ConfigManager()
paths_config = config_manager.get_paths_config()
app_config = config_manager.get_app_config()

# Set up directories
DATA_DIR = Path(__file__).parent.parent / paths_config.data_dir


def create_app(engine: Optional[Engine] = None) -> Flask:
    """Build the Flask application around an engine.

    Without an explicit engine one is wired from the loaded configuration
    under ``DATA_DIR``.
    """
    if engine is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        engine = build_engine(
            config_manager.get_engine_config(),
            DATA_DIR,
            admin_user_ids=app_config.admin_user_ids,
        )

    flask_app = Flask(__name__)
    flask_app.wsgi_app = ProxyFix(
        flask_app.wsgi_app,
        x_proto=1,     # trust 1 hop for X-Forwarded-Proto
        x_host=1,      # trust 1 hop for X-Forwarded-Host
        x_prefix=1)    # <-- pay attention to X-Forwarded-Prefix
    flask_app.extensions["engine"] = engine

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    event_tracking_module = create_event_tracking_module(engine)
    catalog_module = create_catalog_module(engine)
    recommendations_module = create_recommendations_module(engine)
    access_control_module = create_access_control_module(engine)
    metrics_report_module = create_metrics_report_module(engine)

    flask_app.register_blueprint(event_tracking_module["blueprint"])
    flask_app.register_blueprint(catalog_module["blueprint"])
    flask_app.register_blueprint(recommendations_module["blueprint"])
    flask_app.register_blueprint(access_control_module["blueprint"])
    flask_app.register_blueprint(metrics_report_module["blueprint"])

    @flask_app.errorhandler(EngineError)
    def engine_error(exc):
        _LOG.warning("Unhandled engine error: %s", exc)
        return jsonify({"error": str(exc)}), 500

    @flask_app.get("/actuator/health")
    def actuator_health():
        """Health check endpoint for monitoring tools and cloud platforms."""
        return jsonify({
            "status": "UP",
            "service": "content-trust-engine",
            "scheme_version": engine.extractor.scheme_version,
        }), 200

    return flask_app


app = create_app()


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="Content recommendation and trust-scoring service")
    parser.add_argument("--port", type=int, help="Port to run the server on")
    parser.add_argument("--host", type=str, help="Host to bind the server to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()

    host = args.host or app_config.host
    port = args.port or app_config.port
    debug = args.debug or app_config.debug

    setup_logging(debug)
    engine_config = config_manager.get_engine_config()
    print(f"✅ Serving engine data from {DATA_DIR.resolve()}")
    print(f"📋 Configuration loaded:")
    print(f"   - Feature dimensions: {engine_config.features.text_dimensions}+{engine_config.features.category_dimensions}")
    print(f"   - Default k: {engine_config.recommendations.default_k}")
    print(f"   - Batch size: {engine_config.recommendations.batch_size}")
    print(f"   - Max Workers: {engine_config.recommendations.max_workers}")
    print(f"   - Anomaly threshold: {engine_config.anomaly.threshold}")
    print(f"   - Server: {host}:{port}")
    app.run(
        host=host,
        port=port,
        debug=debug
    )
