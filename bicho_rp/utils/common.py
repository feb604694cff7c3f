"""Common utility functions for the ledger backend."""

import secrets
import time
from typing import Container

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 9


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id(taken: Container[str] = ()) -> str:
    """Return a fresh 9-character base-36 id not present in ``taken``."""
    while True:
        candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))
        if candidate not in taken:
            return candidate


def random_number(min_val: int, max_val: int) -> int:
    """Cryptographically secure random integer in [min_val, max_val]."""
    return secrets.randbelow(max_val - min_val + 1) + min_val


def format_credits(amount) -> str:
    """Format a credit amount for display: 'RP$ 1.000.000'."""
    return "RP$ " + f"{amount:,}".replace(",", ".")
