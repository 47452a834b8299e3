"""HTTP constants for the API client.

Centralizes status boundaries, timing defaults and user-facing messages.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Status reported when no response reached the client
HTTP_STATUS_NO_RESPONSE = 0

# Deadline applied to every attempt unless overridden (milliseconds)
DEFAULT_TIMEOUT_MS = 15000

# Fixed two-tier backoff between retries of idempotent calls (milliseconds)
DEFAULT_BACKOFF_MS = (350, 900)
DEFAULT_MAX_RETRIES = 2
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})

# Backend endpoints
DEFAULT_BASE_URL = "https://api.megarifas.com.ve"
RENEWAL_PATH = "/auth/refresh"
LOGIN_PATH = "/auth/login"
HEALTH_PATH = "/health"
VERIFY_EMAIL_PATH = "/verify-email"
RESEND_CODE_PATH = "/resend-code"

JSON_CONTENT_TYPE = "application/json"

# User-facing messages returned in ``data["error"]``
NETWORK_ERROR_MESSAGE = "No se pudo conectar. Verifica tu internet o el servidor."
SESSION_EXPIRED_MESSAGE = "Sesión expirada. Inicia sesión nuevamente."
