"""Current tenant identity capability.

Authentication itself happens elsewhere; the core only asks "who is the
current tenant" and wants to hear when that changes.
"""

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[str | None], None]


class IdentityProvider(Protocol):
    """Capability consumed by ledger view bindings."""

    def current_tenant_id(self) -> str | None: ...

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]: ...


class SessionIdentity:
    """Identity held for one client session (HTTP connection or test)."""

    def __init__(self, tenant_id: str | None = None):
        self._tenant_id = tenant_id or None
        self._callbacks: dict[int, IdentityCallback] = {}
        self._next_id = 0

    def current_tenant_id(self) -> str | None:
        return self._tenant_id

    def set_tenant(self, tenant_id: str | None) -> None:
        """Switch identity (sign-in, sign-out) and notify listeners."""
        tenant_id = tenant_id or None
        if tenant_id == self._tenant_id:
            return
        logger.info("identity: tenant changed %s -> %s", self._tenant_id, tenant_id)
        self._tenant_id = tenant_id
        for callback in list(self._callbacks.values()):
            callback(tenant_id)

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register a listener; returns an idempotent unsubscribe function."""
        self._next_id += 1
        key = self._next_id
        self._callbacks[key] = callback

        def unsubscribe() -> None:
            self._callbacks.pop(key, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._callbacks)


__all__ = ["IdentityProvider", "SessionIdentity", "IdentityCallback"]
