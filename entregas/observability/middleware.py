"""
Observability Middleware

Flask middleware for adding OpenTelemetry instrumentation and request logging
to all HTTP requests.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)


def add_observability_middleware(app: Flask, instrument: bool = True):
    """Add OpenTelemetry instrumentation and request logging to Flask app."""

    if instrument:
        FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def before_request():
        """Set up request context and start timing."""
        g.start_time = time.time()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            span.set_attributes({
                "http.target": request.path,
                "http.user_agent": request.headers.get("User-Agent", ""),
                "http.remote_addr": request.remote_addr or ""
            })

    @app.after_request
    def after_request(response):
        """Log request completion and expose the trace id."""
        duration_ms = round((time.time() - g.get('start_time', time.time())) * 1000, 2)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attributes({
                "http.status_code": response.status_code,
                "http.duration_ms": duration_ms
            })

        user_context = g.get('user_context')
        logger.info(
            "HTTP request completed",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "user_id": user_context.user_id if user_context else None,
                "trace_id": g.get('trace_id')
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
