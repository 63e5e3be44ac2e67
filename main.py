# ------------------------------------------------------------------------------
# Main Script for the Invoice Manager Web Interface
# main.py
# ------------------------------------------------------------------------------
from config import get_config
config = get_config()
from logging_config import get_logger
logger = get_logger(__name__)
import atexit

# --------------------------------------------------------------------------
# Configuration Parameters
# --------------------------------------------------------------------------
_debug = config["DEBUG_MODE"]

logger.info(f"Debug mode is {'enabled' if _debug else 'disabled'}.")
logger.info(f"Data root: {config['DATA_ROOT']}")

# -----------------------------
# Create the Web Interface
# -----------------------------
from web.web_interface import create_web_interface

# Expose the Flask server as the WSGI app.
interface = create_web_interface(config)
app = interface["server"]

# Close the store cleanly so SQLite checkpoints the WAL on shutdown
atexit.register(interface["store_handle"].close)

if __name__ == '__main__':
    # Run the web interface
    try:
        interface["run"](debug=_debug, host='0.0.0.0', port=config["PORT"])
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Shutting down...")
