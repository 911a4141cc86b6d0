import secrets

# 32 bytes -> 256 bits of entropy
SECRET_BYTES = 32


def generate_secret() -> str:
    """Return an unguessable URL-safe secret (never contains ':')."""
    return secrets.token_urlsafe(SECRET_BYTES)
