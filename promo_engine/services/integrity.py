import hashlib
import hmac


def sign(code: str, secret: str) -> str:
    """Return the hex integrity tag for ``code``.

    The tag is SHA-256 over ``"<secret>:<code>"``. Without the secret a valid
    (code, tag) pair cannot be produced.
    """
    message = f"{secret}:{code}"
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def verify(code: str, tag: str, secret: str) -> bool:
    """Check ``tag`` against ``code``. Malformed input yields ``False``."""
    if not isinstance(code, str) or not isinstance(tag, str) or not isinstance(secret, str):
        return False
    try:
        expected = sign(code, secret)
        return hmac.compare_digest(expected, tag)
    except (TypeError, UnicodeEncodeError):
        # compare_digest refuses non-ASCII str
        return False
