#!/usr/bin/env python3
"""
Runner script for the content trust engine web service.

Sets up logging before the app is imported so engine wiring is logged, and
drains the batch worker pool on exit.
"""

import sys
from pathlib import Path

# Add the current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

from config_manager import get_app_config
from recommendation_service import setup_logging, stop_logging


def main() -> None:
    app_config = get_app_config()
    setup_logging(app_config.debug)

    from app.main import app

    engine = app.extensions["engine"]
    print(f"🚀 Starting content trust engine on {app_config.host}:{app_config.port}")
    print(f"🧮 Feature scheme: {engine.extractor.scheme_version}")
    try:
        app.run(
            host=app_config.host,
            port=app_config.port,
            debug=app_config.debug
        )
    finally:
        engine.shutdown()
        stop_logging()


if __name__ == "__main__":
    main()
