"""Per-request caller identity.

The authentication middleware resolves a CallerIdentity once per request
and stores it on ``request.state.identity``. It is read-only for the rest
of the request and discarded with it. Requests without a valid token get
ANONYMOUS, never None.
"""

import uuid
from dataclasses import dataclass

from starlette.requests import Request


@dataclass(frozen=True)
class CallerIdentity:
    """Identity attached to an in-flight request.

    Attributes:
        user_id: Owner of the presented token. None for anonymous callers.
        is_activated: Whether the owner's account is activated.
    """

    user_id: uuid.UUID | None
    is_activated: bool = False

    @property
    def is_anonymous(self) -> bool:
        """True when no valid credential was presented."""
        return self.user_id is None


ANONYMOUS = CallerIdentity(user_id=None, is_activated=False)


def set_identity(request: Request, identity: CallerIdentity) -> None:
    """Attach the resolved identity to the request scope."""
    request.state.identity = identity


def get_request_identity(request: Request) -> CallerIdentity:
    """Read the identity attached by the authentication middleware.

    Falls back to ANONYMOUS when the middleware did not run (e.g. a
    request that never passed through the chain).
    """
    return getattr(request.state, "identity", ANONYMOUS)
