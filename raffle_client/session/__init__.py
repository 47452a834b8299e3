"""Session storage."""

from raffle_client.session.store import InMemorySessionStore


__all__ = ["InMemorySessionStore"]
