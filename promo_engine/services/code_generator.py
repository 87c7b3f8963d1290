import base64
import re
import secrets

CODE_LENGTH = 8

# Uppercase letters and digits without the look-alikes 0/O and 1/I.
# These are 32 of the 64 base64 symbols, so filtering keeps them uniform.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_PATTERN = re.compile(rf"^[{CODE_ALPHABET}]{{{CODE_LENGTH}}}$")

_ALPHABET_SET = frozenset(CODE_ALPHABET)


class CodeGenerationError(RuntimeError):
    pass


def _random_chars(nbytes: int) -> str:
    # nbytes must be a multiple of 3 so every base64 symbol carries 6 random bits
    try:
        raw = secrets.token_bytes(nbytes)
    except (OSError, NotImplementedError) as exc:
        raise CodeGenerationError("Secure random source unavailable") from exc
    encoded = base64.b64encode(raw).decode("ascii")
    # No case folding: folding lowercase onto uppercase would double the letter weight.
    return "".join(ch for ch in encoded if ch in _ALPHABET_SET)


def generate_promotion_code() -> str:
    """Return a random 8 character code drawn from ``CODE_ALPHABET``.

    Filtering the base64 output can leave fewer than ``CODE_LENGTH`` usable
    characters, in which case more random bytes are drawn until the code is
    complete.
    """
    code = _random_chars(6)
    while len(code) < CODE_LENGTH:
        code += _random_chars(3)
    return code[:CODE_LENGTH]


def is_valid_code_format(code) -> bool:
    if not code or not isinstance(code, str):
        return False
    return CODE_PATTERN.match(code.upper()) is not None
