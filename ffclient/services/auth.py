import logging

import jwt
import requests
from pydantic import ValidationError

from ffclient.config import Options
from ffclient.exceptions import AuthenticationError
from ffclient.models import AuthSession
from ffclient.schemas import AuthResponse

logger = logging.getLogger(__name__)


def authenticate(http: requests.Session, options: Options, api_key: str) -> AuthSession:
    """Exchange the API key for a bearer token and read its environment claim.

    The token is decoded without verifying its signature; the issuing
    service is trusted.
    """
    try:
        resp = http.post(
            f"{options.base_url}/client/auth",
            json={"apiKey": api_key},
            headers={"Content-Type": "application/json"},
            timeout=options.request_timeout,
        )
        resp.raise_for_status()
        data = AuthResponse.model_validate(resp.json())
    except (requests.RequestException, ValidationError, ValueError) as e:
        raise AuthenticationError(f"authentication request failed: {e}", cause=e) from e

    try:
        claims = jwt.decode(data.authToken, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise AuthenticationError(f"auth token could not be decoded: {e}", cause=e) from e

    environment = claims.get("environment")
    if not environment:
        raise AuthenticationError("auth token has no environment claim")
    logger.debug("Authenticated, environment=%s", environment)
    return AuthSession(token=data.authToken, environment=str(environment), claims=claims)
