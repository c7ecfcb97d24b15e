import secrets
import logging
from typing import Optional

logger = logging.getLogger("DriveConnector.security")


def verify_api_key(token: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of the presented token against the shared key.

    An unset or blank expected key never authenticates anything.
    """
    if not expected or not expected.strip():
        logger.error("No MCP_API_KEY configured; rejecting request")
        return False
    if token is None:
        return False
    return secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))
