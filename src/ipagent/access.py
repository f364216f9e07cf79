"""Single-owner access control and the Active/Paused switch."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .errors import InvalidPauseStateError, UnauthorizedError
from .events import Event, OwnershipTransferred, Paused, Unpaused
from .identifiers import ZERO_ADDRESS, normalize_address

logger = logging.getLogger(__name__)

Storage = Callable[[], dict[str, Any]]
Emit = Callable[[Event], None]


def resolve_initial_owner(deployer: str, requested_owner: str) -> str:
    """The deployer owns unless a different, non-zero owner was requested."""
    deployer = normalize_address(deployer)
    requested_owner = normalize_address(requested_owner)
    if requested_owner == ZERO_ADDRESS or requested_owner == deployer:
        return deployer
    return requested_owner


class Ownable:
    """Plain comparison against one stored owner address."""

    def __init__(self, storage: Storage, emit: Emit):
        self._storage = storage
        self._emit = emit

    @property
    def owner(self) -> str:
        return self._storage()["owner"]

    def initialize(self, deployer: str, requested_owner: str) -> None:
        deployer = normalize_address(deployer)
        self._storage()["owner"] = deployer
        self._emit(OwnershipTransferred(previous_owner=ZERO_ADDRESS, new_owner=deployer))
        owner = resolve_initial_owner(deployer, requested_owner)
        if owner != deployer:
            self._storage()["owner"] = owner
            self._emit(OwnershipTransferred(previous_owner=deployer, new_owner=owner))

    def require_owner(self, caller: str) -> str:
        caller = normalize_address(caller)
        if caller != self.owner:
            raise UnauthorizedError(caller)
        return caller


class PauseController:
    """
    Two states, Active (initial) and Paused.

    Re-entering the current state succeeds without changing anything or
    emitting an event.
    """

    ACTIVE = "active"
    PAUSED = "paused"

    def __init__(self, storage: Storage, emit: Emit):
        self._storage = storage
        self._emit = emit

    @property
    def paused(self) -> bool:
        return bool(self._storage().get("paused", False))

    @property
    def state(self) -> str:
        return self.PAUSED if self.paused else self.ACTIVE

    def pause(self, account: str) -> None:
        if self.paused:
            return
        self._storage()["paused"] = True
        self._emit(Paused(account=account))
        logger.info("Paused by %s", account)

    def unpause(self, account: str) -> None:
        if not self.paused:
            return
        self._storage()["paused"] = False
        self._emit(Unpaused(account=account))
        logger.info("Unpaused by %s", account)

    def require_active(self) -> None:
        if self.paused:
            raise InvalidPauseStateError(self.ACTIVE)

    def require_paused(self) -> None:
        if not self.paused:
            raise InvalidPauseStateError(self.PAUSED)
