"""
Paste ID generation.

IDs are 8 characters drawn from an alphabet without look-alike characters
(no 0/O, 1/I/l), which keeps shared links easy to read aloud and retype.
"""
import secrets

ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz"
ID_LENGTH = 8


def generate_paste_id(length: int = ID_LENGTH) -> str:
    """Generate a random, URL-safe paste ID.

    Uniqueness is not checked here; the store rejects duplicates on insert.
    """
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
