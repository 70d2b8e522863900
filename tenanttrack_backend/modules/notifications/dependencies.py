"""Email collaborator dependency."""

from functools import lru_cache

from .email_client import EmailClient


@lru_cache
def get_email_client() -> EmailClient:
    return EmailClient()
