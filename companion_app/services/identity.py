import asyncio
import logging
from typing import Optional

from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

class GoogleIdentityOracle:
    """Resolves a bearer Google ID token to the caller's stable subject id."""

    def __init__(self, client_id: str):
        self.client_id = client_id

    async def resolve_caller(self, authorization: Optional[str]) -> Optional[str]:
        """
        Returns the caller id, or None for an anonymous caller (missing,
        malformed, expired or foreign token).
        """
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            logger.debug("Authorization header is not a bearer token.")
            return None

        try:
            # verify_oauth2_token fetches Google's certs over the network; keep it off the event loop
            id_info = await asyncio.to_thread(
                id_token.verify_oauth2_token,
                token.strip(),
                GoogleRequest(),
                self.client_id,
            )
        except ValueError as e:
            logger.info(f"Rejected ID token: {e}")
            return None

        return id_info.get("sub")
