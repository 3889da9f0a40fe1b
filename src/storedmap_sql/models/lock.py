"""Lease lock models."""

from pydantic import BaseModel


class LockStatus(BaseModel):
    """Outcome of one lock attempt.

    ``wait_millis`` is 0 when the caller now holds the lease; otherwise it is
    the time left on another session's lease, held by ``holder_session``.
    """

    wait_millis: int
    holder_session: str | None

    @property
    def acquired(self) -> bool:
        """True when the caller holds the lease."""
        return self.wait_millis <= 0
