"""
IdentityLockService -- serializes quantity-reducing movements per identity.

Responsibility:
    Takes the lock row of a logical identity inside the caller's
    transaction, so that "read available quantity, then append ISSUE" runs
    as one atomic conditional append.  Two concurrent issuers of the same
    identity queue on the lock row; the second one reads the availability
    left by the first.

Architecture position:
    Kernel > Services.  Called by MovementService before every
    availability check that guards a negative delta.

Mechanism:
    UPDATE stock_identity_locks SET version = version + 1 WHERE key = :k.
    On PostgreSQL this takes the row lock until commit/rollback.  On SQLite
    it takes the database write lock.  If no row exists yet, the row is
    inserted inside a savepoint; a concurrent insert of the same key fails
    the primary key and the UPDATE is simply retried.

Failure modes:
    - OperationalError on lock_timeout (PostgreSQL) or busy timeout
      (SQLite); the facade translates it to a retryable ConflictError.
    - ConflictError if the lock row cannot be found after losing the
      insert race; the facade retries the whole operation.
"""

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.identity import LogicalIdentity
from stock_kernel.exceptions import ConflictError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.identity_lock import IdentityLock
from stock_kernel.services.base import BaseService

logger = get_logger("services.identity_lock")


class IdentityLockService(BaseService):
    """Per-identity lock rows held for the caller's transaction."""

    def _bump(self, key: str) -> bool:
        result = self.session.execute(
            update(IdentityLock)
            .where(IdentityLock.identity_key == key)
            .values(version=IdentityLock.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def acquire(self, identity: LogicalIdentity) -> str:
        """
        Lock ``identity`` until the caller's transaction ends.

        Returns:
            The identity key that was locked.
        """
        key = identity.key
        if self._bump(key):
            logger.debug("identity_lock_acquired", extra={"identity_key": key})
            return key

        # First use of this identity.  Another transaction may be inserting
        # the same row; the savepoint keeps the outer transaction usable.
        savepoint = self.session.begin_nested()
        try:
            self.session.add(IdentityLock(identity_key=key, version=1))
            self.session.flush()
            savepoint.commit()
            logger.debug("identity_lock_created", extra={"identity_key": key})
            return key
        except IntegrityError:
            savepoint.rollback()
            logger.debug("identity_lock_race_retry", extra={"identity_key": key})

        if not self._bump(key):
            raise ConflictError("acquire_identity_lock", f"lock row for {key} disappeared")
        logger.debug("identity_lock_acquired", extra={"identity_key": key})
        return key
