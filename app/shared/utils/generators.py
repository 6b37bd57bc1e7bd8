"""ID and token generators."""

import secrets

from cuid2 import cuid_wrapper

cuid_generator = cuid_wrapper()


def generate_cuid() -> str:
    """Generate a collision-resistant unique identifier (CUID2) for rows."""
    result = cuid_generator()
    if not isinstance(result, str):
        raise TypeError(
            f"Expected str from cuid_generator, got {type(result).__name__}"
        )
    return result


def generate_wait_token() -> str:
    """Opaque token identifying one suspension of a run."""
    return secrets.token_urlsafe(16)
