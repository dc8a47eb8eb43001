"""
Record identifiers shared by the payment and agent services.

Ids look like ``<prefix><base36 ms timestamp><base36 random>``, for example
``payment_lx3k9c1q7hd0a2mv4``.
"""

import random
import time

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


def generate_id(prefix: str) -> str:
    """Unique enough within a session; not a cryptographic identifier."""
    return prefix + to_base36(int(time.time() * 1000)) + to_base36(random.getrandbits(52))
