# ------------------------------------------------------------------------------
# web_interface.py
# ------------------------------------------------------------------------------

import logging

from flask import Flask

from config import get_config
from web.blueprints.auth import auth_bp
from web.blueprints.backup import backup_bp, init_backup_bp
from web.services import backup_restore_service, db_service, path_service


def create_web_interface(config=None, store_handle=None):
    """
    Creates and returns the web interface (Flask server) for the project.

    The store handle is created here (or passed in) and handed to the
    blueprints that need it; nothing else opens or closes it.

    Returns a dict with:
      - server: the Flask app
      - store_handle: the StoreHandle owned by the app
      - run: callable starting the development server
    """
    logger = logging.getLogger(__name__)
    config = config or get_config()

    pm = path_service.get_path_manager(config["DATA_ROOT"])
    pm.get_data_dir()
    pm.get_uploads_dir()
    pm.get_temp_dir()

    # Leftovers from a restore interrupted by a crash or restart
    backup_restore_service.cleanup_temp_files(pm)

    if store_handle is None:
        store_handle = db_service.open_store(pm)
    logger.info(f"Database initialized: {pm.db_path}")

    if not config["ADMIN_USERNAME"] or not config["ADMIN_PASSWORD_HASH"]:
        logger.warning("ADMIN_USERNAME / ADMIN_PASSWORD_HASH not set in .env file. Login is disabled.")
    if config["SECRET_KEY"] == "fallback-secret-key":
        logger.warning("SESSION_SECRET not set in .env file, using default. THIS IS INSECURE.")

    server = Flask(__name__)
    server.secret_key = config["SECRET_KEY"]
    # Multipart overhead on top of the artifact itself
    server.config["MAX_CONTENT_LENGTH"] = config["MAX_UPLOAD_BYTES"] + 1024 * 1024
    server.config["SESSION_COOKIE_HTTPONLY"] = True

    init_backup_bp(store_handle, pm)
    server.register_blueprint(auth_bp)
    server.register_blueprint(backup_bp)

    def run(debug=False, host="0.0.0.0", port=None):
        server.run(debug=debug, host=host, port=port or config["PORT"], threaded=True)

    return {"server": server, "store_handle": store_handle, "run": run}
