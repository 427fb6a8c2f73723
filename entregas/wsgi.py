"""
WSGI entry point.

    gunicorn entregas.wsgi:app
"""

import os

from .observability.config import setup_observability
from .app import create_app

# Tracing must be configured before the app is instrumented
setup_observability()

app = create_app()

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )
