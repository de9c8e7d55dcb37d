"""
Storage mode selection.

Nobody signed in: the device-local store. Someone signed in: the remote
store scoped to that user. There is no merging across the two; switching
identity simply points the ledger at a different store, which it then
reloads from scratch.
"""

from typing import Callable, Optional

import structlog

from snapledger.models.ledger import UserIdentity
from snapledger.services.storage.interface import LedgerStoreInterface, PreconditionError

logger = structlog.get_logger(__name__)

RemoteStoreFactory = Callable[[UserIdentity], LedgerStoreInterface]


class ModeSelector:
    """Holds the current identity and the store it implies."""

    def __init__(
        self,
        local_store: LedgerStoreInterface,
        remote_factory: Optional[RemoteStoreFactory] = None,
    ):
        self._local = local_store
        self._remote_factory = remote_factory
        self._identity: Optional[UserIdentity] = None
        self._remote: Optional[LedgerStoreInterface] = None

    @property
    def identity(self) -> Optional[UserIdentity]:
        return self._identity

    @property
    def is_remote(self) -> bool:
        return self._identity is not None

    @property
    def active_store(self) -> LedgerStoreInterface:
        if self._remote is not None:
            return self._remote
        return self._local

    def set_identity(self, identity: Optional[UserIdentity]) -> LedgerStoreInterface:
        """
        Switch to `identity` (None signs out) and return the now-active store.

        Raises:
            PreconditionError: Signing in without a configured remote store.
                The current mode is kept.
        """
        if identity is None:
            self._identity = None
            self._remote = None
            logger.info("storage_mode_selected", mode="local")
            return self._local

        if self._remote_factory is None:
            raise PreconditionError("No remote store is configured; cannot sign in")

        remote = self._remote_factory(identity)
        self._identity = identity
        self._remote = remote
        logger.info("storage_mode_selected", mode="remote", user_id=identity.user_id)
        return remote
