import secrets


def generate_verification_token() -> str:
    """Return 16 random bytes, hex encoded, for email verification and password reset links."""
    return secrets.token_hex(16)
