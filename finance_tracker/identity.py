"""
Identity Provider Seam

Authentication itself is delegated to an external identity provider.
The core only needs to know who the current user is; every
transaction's user_id comes from here.
"""

from abc import ABC, abstractmethod
from typing import Optional


class IdentityProvider(ABC):
    """Supplies the id of the signed-in user, or None when nobody is."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        pass

    @property
    def is_authenticated(self) -> bool:
        return self.current_user_id() is not None


class LocalIdentityProvider(IdentityProvider):
    """Offline-only mode: a fixed local user."""

    def __init__(self, user_id: str):
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id


def resolve_user_id(provider: Optional[IdentityProvider], fallback: str) -> str:
    """The provider's current user, or the local fallback when signed out."""
    if provider is None or not provider.is_authenticated:
        return fallback
    return provider.current_user_id() or fallback
