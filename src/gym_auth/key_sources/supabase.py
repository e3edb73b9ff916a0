"""
Supabase JWKS key source.

Fetches the project's signing keys from the Supabase Auth JWKS endpoint.
"""

import logging
from http.client import HTTPException
from urllib.error import HTTPError

from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError, PyJWKClientError

from ..errors import BadStatus, MalformedKeySet, NetworkFailure
from ..keys import SigningKeySet, parse_key_set
from ..protocols import KeySource

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0


def issuer_for(base_url: str) -> str:
    """Expected ``iss`` claim for tokens minted by the project at ``base_url``."""
    return f"{base_url.rstrip('/')}/auth/v1"


def jwks_url_for(base_url: str) -> str:
    """JWKS endpoint of the project at ``base_url``."""
    return f"{issuer_for(base_url)}/.well-known/jwks.json"


class SupabaseJWKSSource(KeySource):
    """
    Fetches the signing key set published by a Supabase project.

    Responsibilities
    ----------------
    1. Perform one HTTPS GET against the project's JWKS endpoint, bounded by
       ``timeout`` seconds.
    2. Classify failures into the domain taxonomy.
    3. Parse the body into an immutable SigningKeySet.

    This class does not cache and does not retry. ``PyJWKClient`` is used only
    for its HTTP fetch; its own key and key-set caches are disabled so that
    KeySetCache is the single place that decides freshness.

    Failure mapping
    ---------------
    - Non-2xx response                 -> BadStatus (retryable NetworkFailure)
    - DNS / connect / read / timeout   -> NetworkFailure
    - Truncated body                   -> NetworkFailure
    - Body not JSON, or not a JWKS     -> MalformedKeySet

    urllib treats every 2xx status as success and PyJWKClient does not expose
    the status code, so a 201/203 carrying a valid JWKS document is accepted
    and an empty 204 surfaces as MalformedKeySet rather than BadStatus.

    Parameters
    ----------
    base_url : str
        Project URL (e.g. "https://example.supabase.co"). The JWKS URL is
        derived as ``{base_url}/auth/v1/.well-known/jwks.json``.

    timeout : float
        Seconds before the request is abandoned.

    Example
    -------
    source = SupabaseJWKSSource("https://example.supabase.co")
    key_set = source.fetch()
    """

    def __init__(self, base_url: str, timeout: float = _DEFAULT_TIMEOUT) -> None:
        if not base_url:
            raise ValueError("base_url cannot be empty")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self.jwks_url = jwks_url_for(base_url)
        self._client = PyJWKClient(
            self.jwks_url,
            cache_keys=False,
            cache_jwk_set=False,
            timeout=timeout,
        )

    def fetch(self) -> SigningKeySet:
        try:
            document = self._client.fetch_data()
        except PyJWKClientConnectionError as e:
            cause = e.__cause__ or e.__context__
            if isinstance(cause, HTTPError):
                logger.warning("JWKS endpoint %s returned status %s", self.jwks_url, cause.code)
                raise BadStatus(cause.code) from e
            logger.warning("JWKS endpoint %s unreachable: %s", self.jwks_url, cause or e)
            raise NetworkFailure("JWKS endpoint unreachable") from e
        except PyJWKClientError as e:
            cause = e.__cause__ or e.__context__
            if isinstance(cause, (OSError, HTTPException)):
                logger.warning("JWKS fetch from %s failed: %s", self.jwks_url, cause)
                raise NetworkFailure("JWKS fetch failed") from e
            logger.warning("JWKS endpoint %s returned an invalid document: %s", self.jwks_url, e)
            raise MalformedKeySet("JWKS body is not a JSON object") from e
        except (OSError, HTTPException) as e:
            # Connection dropped or body truncated while reading.
            logger.warning("JWKS fetch from %s failed: %s", self.jwks_url, e)
            raise NetworkFailure("JWKS fetch failed") from e
        except ValueError as e:
            logger.warning("JWKS endpoint %s returned a non-JSON body", self.jwks_url)
            raise MalformedKeySet("JWKS body is not valid JSON") from e

        key_set = parse_key_set(document)
        logger.info("Fetched %d signing key(s) from %s", len(key_set), self.jwks_url)
        return key_set
