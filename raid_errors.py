"""
Raid Pool Errors - Failure kinds surfaced by the off-chain engine.

Every failure carries the identifiers needed to decide whether to re-query
the ledger and retry. Nothing here is recovered silently.

Kinds:
- ConfigurationError: bad blueprint, missing role, malformed identity (fatal)
- AccountLookupError: expected singleton account missing or duplicated
- DatumFormatError: datum bytes do not decode to the expected record
- InvariantViolation: a transition would produce an invalid pool state
- SubmissionRejected: the ledger refused a request
- ConfirmationTimeout: outcome of a submitted request is not yet known
"""
from typing import Optional


class RaidError(Exception):
    """Base class for all raid pool errors."""


class ConfigurationError(RaidError):
    """Script templates, identities or config values are missing or malformed."""


class AccountLookupError(RaidError, LookupError):
    """Zero or several accounts matched a query that expects exactly one."""

    def __init__(self, address: str, unit: Optional[str], found: int):
        self.address = address
        self.unit = unit
        self.found = found
        if found == 0:
            detail = "no account"
        else:
            detail = f"{found} accounts (expected exactly one)"
        super().__init__(f"{detail} at {address} holding {unit or 'any unit'}")


class DatumFormatError(RaidError, ValueError):
    """Datum bytes are malformed, truncated or have the wrong shape."""

    def __init__(self, message: str, data: bytes = b"", offset: Optional[int] = None, path: str = ""):
        self.data = data
        self.offset = offset
        self.path = path
        where = []
        if offset is not None:
            where.append(f"offset {offset}")
        if path:
            where.append(f"field {path}")
        suffix = f" ({', '.join(where)})" if where else ""
        super().__init__(f"{message}{suffix}: {data.hex()}")


class InvariantViolation(RaidError):
    """A computed pool state breaks the pool invariants. Never clamped."""


class InsufficientLockError(InvariantViolation):
    """Locked value or remaining actions would go negative on a claim."""

    def __init__(self, locked: int, reward: int, remaining: int):
        self.locked = locked
        self.reward = reward
        self.remaining = remaining
        super().__init__(
            f"cannot pay reward {reward} from locked {locked} with {remaining} actions remaining"
        )


class SubmissionRejected(RaidError):
    """The ledger rejected a request. Retry only after re-reading state."""

    def __init__(self, reason: str, request_id: Optional[str] = None, stale_input: bool = False):
        self.reason = reason
        self.request_id = request_id
        self.stale_input = stale_input
        label = request_id or "request"
        super().__init__(f"{label} rejected: {reason}")


class ConfirmationTimeout(RaidError):
    """No verdict within the deadline. The request may still confirm."""

    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"no confirmation for {request_id} after {timeout}s; outcome unknown")
