import logging
import threading
import time
from typing import Any, Dict, Optional

import requests
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"
JWKS_CACHE_SECONDS = 3600


class FirebaseTokenError(Exception):
    pass


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens (RS256) against Google's published key set."""

    def __init__(self, project_id: Optional[str], jwks_url: str = FIREBASE_JWKS_URL):
        self.project_id = project_id
        self.jwks_url = jwks_url
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def _get_jwks(self, timeout: float) -> Dict[str, Any]:
        with self._lock:
            if self._jwks and time.monotonic() - self._fetched_at < JWKS_CACHE_SECONDS:
                return self._jwks

        # Fetch outside the lock; concurrent refreshes may both store.
        try:
            resp = requests.get(self.jwks_url, timeout=timeout)
            resp.raise_for_status()
            jwks = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise FirebaseTokenError(f"Could not fetch signing keys: {e}") from e
        logger.info("Fetched %d Firebase signing keys", len(jwks.get("keys", [])))

        with self._lock:
            self._jwks = jwks
            self._fetched_at = time.monotonic()
        return jwks

    def verify(self, id_token: str, timeout: float = 10.0) -> Dict[str, Any]:
        """Return the token claims; ``uid`` is added from ``sub``."""
        if not self.project_id:
            raise FirebaseTokenError("Firebase project id is not configured")
        jwks = self._get_jwks(timeout)
        try:
            claims = jwt.decode(
                id_token,
                jwks,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=FIREBASE_ISSUER_PREFIX + self.project_id,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            raise FirebaseTokenError(str(e)) from e
        if not claims.get("sub"):
            raise FirebaseTokenError("Token has no subject")
        claims["uid"] = claims["sub"]
        return claims
