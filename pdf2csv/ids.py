"""Job identifiers: short, unguessable, URL-safe."""
import secrets
import string

JOB_ID_LENGTH = 12
JOB_ID_ALPHABET = string.ascii_letters + string.digits + "_-"

_ALPHABET_SET = frozenset(JOB_ID_ALPHABET)


def generate_job_id() -> str:
    return "".join(secrets.choice(JOB_ID_ALPHABET) for _ in range(JOB_ID_LENGTH))


def is_valid_job_id(candidate) -> bool:
    """Format check only; says nothing about whether the job exists."""
    if not isinstance(candidate, str) or len(candidate) != JOB_ID_LENGTH:
        return False
    return all(ch in _ALPHABET_SET for ch in candidate)
