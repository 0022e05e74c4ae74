"""Thin API launcher.

This is the uvicorn entrypoint for running under an external server.
All application logic lives in the fintrack package.
Run with: uvicorn apps.api.main:app --reload

The standalone host (plain + TLS listeners, graceful shutdown) is
``fintrack-api``; see fintrack.server.

Note: The app instance is created here (not in fintrack.app) to avoid
import-time side effects. This allows tests to import create_app without
requiring environment variables to be configured.
"""

from fintrack.app import add_request_id_middleware, create_app
from fintrack.config import get_settings
from fintrack.logging import configure_logging

configure_logging(json_format=get_settings().log_json)

# Create the application instance
app = create_app()
# Add request-id middleware LAST so it runs FIRST (outermost)
add_request_id_middleware(app)

__all__ = ["app"]
