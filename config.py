# config.py
import os
from dotenv import load_dotenv

# Load environment variables from .env file.
load_dotenv()

_config = None


def load_config():
    """
    Loads configuration from environment variables and returns a dictionary.
    """
    max_upload_mb = int(os.getenv("MAX_UPLOAD_MB", 500))

    config = {
        # General Settings
        "DEBUG_MODE": os.getenv("DEBUG_MODE", "False").lower() == "true",
        "DATA_ROOT": os.getenv("DATA_ROOT", "."),
        "DB_NAME": os.getenv("DB_NAME", "invoice"),
        "PORT": int(os.getenv("PORT", 3000)),

        # Session and Admin Credential
        "SECRET_KEY": os.getenv("SESSION_SECRET", "fallback-secret-key"),
        "ADMIN_USERNAME": os.getenv("ADMIN_USERNAME", ""),
        "ADMIN_PASSWORD_HASH": os.getenv("ADMIN_PASSWORD_HASH", ""),

        # Backup / Restore Settings
        "MAX_UPLOAD_BYTES": max_upload_mb * 1024 * 1024,
        "CHECKPOINT_ATTEMPTS": int(os.getenv("CHECKPOINT_ATTEMPTS", 3)),
        "CHECKPOINT_RETRY_DELAY": float(os.getenv("CHECKPOINT_RETRY_DELAY", 0.1)),

        # Language
        "DEFAULT_LANGUAGE": os.getenv("DEFAULT_LANGUAGE", "ko"),
    }
    return config


def get_config():
    """Returns the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


if __name__ == "__main__":
    # For testing purposes, print the configuration
    config = load_config()
    from pprint import pprint

    pprint({k: ("***" if "SECRET" in k or "HASH" in k else v) for k, v in config.items()})
