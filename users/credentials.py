"""
Credential helpers shared by the exam platform.

Exam passwords go through Django's configured password hashers, the same
machinery that protects account passwords. Attempt lock tokens are random
capabilities handed to the client; only their SHA-256 digest is stored.
"""
import hashlib
import hmac
import secrets

from django.contrib.auth.hashers import check_password, make_password

LOCK_TOKEN_BYTES = 32


def hash_secret(raw):
    return make_password(raw)


def verify_secret(raw, hashed):
    if not raw or not hashed:
        return False
    return check_password(raw, hashed)


def generate_lock_token():
    return secrets.token_urlsafe(LOCK_TOKEN_BYTES)


def digest_lock_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def lock_token_matches(presented, stored_digest):
    """Constant-time check of a presented token against the stored digest."""
    if not presented or not stored_digest:
        return False
    return hmac.compare_digest(digest_lock_token(presented), stored_digest)
