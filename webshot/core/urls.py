"""Decoding of the target URL carried in the request path."""
import base64
import binascii
import re

from webshot.core.errors import DecodeError


SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """
    Make sure the URL carries an http(s) scheme.

    Scheme-less input such as "example.com" becomes "http://example.com".
    """
    url = url.strip()
    if SCHEME_PATTERN.match(url):
        return url
    return f"http://{url.lstrip('/')}"


def decode_target_url(encoded: str) -> str:
    """
    Decode a base64 encoded target URL and normalize its scheme.

    Accepts the standard and URL-safe alphabets and tolerates missing
    padding, since browsers and proxies are not consistent about either.

    Raises:
        DecodeError: if the payload is not valid base64, not UTF-8, or empty
    """
    payload = "".join(encoded.split())
    if not payload:
        raise DecodeError("Empty URL payload")

    payload = payload.replace("-", "+").replace("_", "/")
    payload += "=" * (-len(payload) % 4)

    try:
        raw = base64.b64decode(payload, validate=True)
        url = raw.decode("utf-8").strip()
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed URL payload: {e}") from e

    if not url:
        raise DecodeError("URL payload decoded to an empty string")

    return normalize_url(url)
