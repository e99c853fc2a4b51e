try:
    from backend.spyroom.server import create_app
    from backend.spyroom.utils.logging import setup_logging
except ImportError:  # pragma: no cover
    from spyroom.server import create_app
    from spyroom.utils.logging import setup_logging

setup_logging()

app, socketio = create_app()
