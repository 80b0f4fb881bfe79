import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str) -> str:
    """
    Build an identifier such as ``export_1718031234567_k3j9x0a1b``.

    The millisecond timestamp keeps ids roughly sortable; the random suffix
    keeps ids generated in the same millisecond apart.
    """
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
