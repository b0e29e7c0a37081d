"""Request signing for the Remember The Milk API.

Every call carries an ``api_sig``: the MD5 digest of the shared secret
followed by each parameter name and value, sorted by name. The service
rejects any request whose signature does not match bit for bit.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from urllib.parse import urlencode

SIGNATURE_PARAM = "api_sig"


def sign_params(secret: str, params: Mapping[str, str]) -> str:
    """Compute the signature for a set of request parameters.

    The result depends only on the secret and the set of key/value pairs,
    never on the order the mapping was built in.

    Args:
        secret: The application's shared secret.
        params: Request parameters, excluding ``api_sig``.

    Returns:
        Lowercase hex MD5 digest.
    """
    to_sign = secret + "".join(
        f"{key}{value}"
        for key, value in sorted(params.items())
        if key != SIGNATURE_PARAM
    )
    return hashlib.md5(to_sign.encode("utf-8")).hexdigest()


def signed_query(secret: str, params: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``params`` with ``api_sig`` added."""
    query = dict(params)
    query[SIGNATURE_PARAM] = sign_params(secret, params)
    return query


def build_signed_url(base_url: str, secret: str, params: Mapping[str, str]) -> str:
    """Build a URL with the given query parameters and their signature last."""
    return f"{base_url}?{urlencode(signed_query(secret, params))}"
