"""Unlock secret generation for ephemeral keychains."""

import secrets

MIN_SECRET_BYTES = 24


def generate_unlock_secret(num_bytes: int = MIN_SECRET_BYTES) -> str:
    """
    Generate a fresh keychain unlock password.

    Args:
        num_bytes: Bytes of entropy to draw (at least 24)

    Returns:
        Hex-encoded secret, two characters per byte

    Raises:
        ValueError: If num_bytes is below the minimum
    """
    if num_bytes < MIN_SECRET_BYTES:
        raise ValueError(
            f"Unlock secret needs at least {MIN_SECRET_BYTES} bytes of entropy, "
            f"got {num_bytes}"
        )
    return secrets.token_hex(num_bytes)
