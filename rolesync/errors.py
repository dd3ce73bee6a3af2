"""Error kinds raised by the reconciliation engine and its collaborators.

Every error except :class:`ProvisioningError` aborts the current run.
``ProvisioningError`` is recovered locally: the principal is skipped and
reconciliation of the remaining principals continues.
"""

from __future__ import annotations


class RolesyncError(Exception):
    """Base class for all rolesync errors.

    :meth:`add_context` prefixes the message with the org/space/role being
    processed, outermost context first.
    """

    context: tuple[str, ...] = ()

    def add_context(self, context: str) -> None:
        self.context = (context, *self.context)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.context:
            return message
        return ": ".join((*self.context, message))


class ConfigurationError(RolesyncError):
    """Raised when settings or the desired-membership config are malformed."""


class NotFoundError(RolesyncError):
    """Raised when a configured org or space does not exist on the platform."""


class UnknownPrincipalError(RolesyncError):
    """Raised when an internal user is not present in the identity directory."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(
            f"user {username} doesn't exist in the identity directory, "
            "so must add internal user first"
        )


class GroupLookupError(RolesyncError):
    """Raised when a directory group or user cannot be resolved."""


class RemoteOperationError(RolesyncError):
    """Raised when a list, add or remove call against the platform fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProvisioningError(RolesyncError):
    """Raised when a federated identity cannot be created (non-fatal)."""
