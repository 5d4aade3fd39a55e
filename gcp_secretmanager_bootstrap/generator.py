# -*- coding: utf-8 -*-
"""Generation of bearer-grade secret values."""

import base64
import secrets

from .exceptions import EntropySourceUnavailable

# 48 bytes is 384 bits, which encodes to exactly 64 url safe characters
TOKEN_ENTROPY_BYTES = 48


def generate_token():
    """
    Generate a url and path safe random token with no padding.

    The bytes come straight from the operating system CSPRNG; there is no
    seed and no fallback to a weaker source.

    :return: str of 64 characters from ``[A-Za-z0-9_-]``
    :raises EntropySourceUnavailable: if the random source cannot be read
    """
    try:
        raw = secrets.token_bytes(TOKEN_ENTROPY_BYTES)
    except (OSError, NotImplementedError) as e:
        raise EntropySourceUnavailable(e) from e
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
