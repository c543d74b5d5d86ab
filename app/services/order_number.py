import secrets
import string
import time

from app.config import settings

BASE36_ALPHABET = string.digits + string.ascii_uppercase


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if number == 0:
        return "0"

    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_order_number(
    prefix: str = None,
    suffix_length: int = None,
    now_ms: int = None,
) -> str:
    """Human-typable order number, e.g. ``CB-M5X7K9P-A2F``.

    Millisecond timestamp plus a random suffix. Needs no coordination and
    has no side effects, so it is safe to call again when a transaction is
    retried. Uniqueness is probabilistic; the order creator re-checks it.
    """
    prefix = prefix or settings.ORDER_NUMBER_PREFIX
    suffix_length = suffix_length or settings.ORDER_NUMBER_SUFFIX_LENGTH
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000

    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{to_base36(now_ms)}-{suffix}"
