"""Delegation storage: abstract interface and in-memory implementation.

The store maps ``(subject_id, grantee)`` to the current
:class:`~capshare.delegation.record.Delegation` and keeps a per-subject
index for enumeration. It performs no authorization checks: callers have
already validated ownership before calling :meth:`DelegationStore.put` or
:meth:`DelegationStore.revoke`.
"""
from __future__ import annotations

import datetime
import logging
import threading
from abc import ABC, abstractmethod

from capshare.delegation.record import Delegation

logger = logging.getLogger(__name__)


class DelegationStore(ABC):
    """Abstract base class for delegation storage backends.

    Implementations must make :meth:`put` and :meth:`revoke` atomic per
    ``(subject_id, grantee)`` key, and :meth:`get` must observe every write
    that completed before it was called.
    """

    @abstractmethod
    def put(self, delegation: Delegation) -> None:
        """Insert or replace the delegation keyed by ``(subject_id, grantee)``.

        A previous delegation for the same key is superseded, not kept
        alongside the new one.
        """

    @abstractmethod
    def get(self, subject_id: str, grantee: str) -> Delegation | None:
        """Return the current delegation for the key, or None."""

    @abstractmethod
    def revoke(self, subject_id: str, grantee: str) -> bool:
        """Mark the current delegation for the key as revoked.

        Returns
        -------
        bool
            True if a delegation exists for the key (whether or not it was
            already revoked), False otherwise.
        """

    @abstractmethod
    def list_for_subject(self, subject_id: str) -> list[Delegation]:
        """Return every current delegation for *subject_id*, ordered by ``issued_at``.

        Includes revoked and expired delegations.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the total number of stored delegations."""

    def list_active(self, subject_id: str, now: datetime.datetime) -> list[Delegation]:
        """Return non-revoked, non-expired delegations for *subject_id* at *now*.

        Ordered by ``issued_at`` ascending.
        """
        return [d for d in self.list_for_subject(subject_id) if d.is_active(now)]


class InMemoryDelegationStore(DelegationStore):
    """Thread-safe in-memory delegation store.

    Each subject has its own lock, so operations on unrelated subjects
    never wait on each other. Records are immutable; revocation swaps in a
    revoked copy under the subject's lock.

    Example
    -------
    ::

        store = InMemoryDelegationStore()
        store.put(delegation)
        store.revoke(delegation.subject_id, delegation.grantee)
        assert store.get(delegation.subject_id, delegation.grantee).revoked
    """

    def __init__(self) -> None:
        self._by_subject: dict[str, dict[str, Delegation]] = {}
        self._subject_locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, subject_id: str) -> threading.Lock:
        with self._guard:
            lock = self._subject_locks.get(subject_id)
            if lock is None:
                lock = threading.Lock()
                self._subject_locks[subject_id] = lock
            return lock

    # ------------------------------------------------------------------
    # DelegationStore interface
    # ------------------------------------------------------------------

    def put(self, delegation: Delegation) -> None:
        with self._lock_for(delegation.subject_id):
            grants = self._by_subject.setdefault(delegation.subject_id, {})
            replaced = grants.get(delegation.grantee)
            grants[delegation.grantee] = delegation
        if replaced is not None:
            logger.debug(
                "Superseded delegation for subject=%s grantee=%s",
                delegation.subject_id,
                delegation.grantee,
            )

    def get(self, subject_id: str, grantee: str) -> Delegation | None:
        with self._lock_for(subject_id):
            return self._by_subject.get(subject_id, {}).get(grantee)

    def revoke(self, subject_id: str, grantee: str) -> bool:
        with self._lock_for(subject_id):
            grants = self._by_subject.get(subject_id)
            if grants is None or grantee not in grants:
                return False
            grants[grantee] = grants[grantee].as_revoked()
            return True

    def list_for_subject(self, subject_id: str) -> list[Delegation]:
        with self._lock_for(subject_id):
            records = list(self._by_subject.get(subject_id, {}).values())
        return sorted(records, key=lambda d: d.issued_at)

    def count(self) -> int:
        with self._guard:
            subjects = list(self._subject_locks)
        total = 0
        for subject_id in subjects:
            with self._lock_for(subject_id):
                total += len(self._by_subject.get(subject_id, {}))
        return total


__all__ = ["DelegationStore", "InMemoryDelegationStore"]
