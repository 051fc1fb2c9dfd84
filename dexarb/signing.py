"""Signing key lookup per actor."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from eth_account import Account
from loguru import logger

from dexarb.core.errors import SigningKeyMissing


class SecretsService(ABC):
    """Resolves an actor's transaction signing key."""

    @abstractmethod
    def get_signing_key(self, actor_id: str) -> str:
        """Return the actor's private key or raise SigningKeyMissing."""
        pass

    def get_address(self, actor_id: str) -> str:
        """Wallet address derived from the actor's key."""
        return Account.from_key(self.get_signing_key(actor_id)).address

    def has_key(self, actor_id: str) -> bool:
        try:
            self.get_signing_key(actor_id)
            return True
        except SigningKeyMissing:
            return False


class ConfigSecretsService(SecretsService):
    """Keys from the ``signing_keys`` config section (usually ``${ENV}`` substituted)."""

    def __init__(self, keys: Optional[Dict[str, str]] = None):
        self._keys = {actor: key for actor, key in (keys or {}).items() if key and not key.startswith("${")}
        if keys and len(self._keys) < len(keys):
            logger.warning(f"Ignoring {len(keys) - len(self._keys)} unresolved signing keys")

    def get_signing_key(self, actor_id: str) -> str:
        key = self._keys.get(actor_id)
        if not key:
            raise SigningKeyMissing(f"No signing key configured for actor {actor_id}")
        return key
