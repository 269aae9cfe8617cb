"""Configuration settings for the vault HTTP server."""

import os

from common.constants import (
    DEFAULT_RECONCILE_INTERVAL_SECONDS,
    DEFAULT_UPLOAD_RATE_LIMIT,
    DEFAULT_UPLOAD_RATE_WINDOW_SECONDS,
)


VAULT_HOST = os.environ.get("VAULT_HOST", "0.0.0.0")

VAULT_PORT = int(os.environ.get("PORT", "5000"))

CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:3000")

UPLOAD_RATE_LIMIT = int(os.environ.get("UPLOAD_RATE_LIMIT", str(DEFAULT_UPLOAD_RATE_LIMIT)))

UPLOAD_RATE_WINDOW_SECONDS = int(
    os.environ.get("UPLOAD_RATE_WINDOW_SECONDS", str(DEFAULT_UPLOAD_RATE_WINDOW_SECONDS))
)

RECONCILE_INTERVAL_SECONDS = int(
    os.environ.get("RECONCILE_INTERVAL_SECONDS", str(DEFAULT_RECONCILE_INTERVAL_SECONDS))
)
