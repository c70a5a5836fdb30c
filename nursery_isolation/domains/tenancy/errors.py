# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant isolation error taxonomy.

Isolation failures are structural bugs, not transient conditions. None of
these errors is ever retried; callers either reject the request or abort
the deployment.
"""

from uuid import UUID


class IsolationError(Exception):
    """Base exception for tenant isolation failures."""

    pass


class Unauthenticated(IsolationError):
    """Raised when a request carries no valid signed credential."""

    def __init__(self, reason: str = "Not authenticated") -> None:
        """Initialize the error.

        Args:
            reason: Why the credential was rejected.
        """
        super().__init__(reason)
        self.reason = reason


class MissingTenantClaim(IsolationError):
    """Raised when a valid credential is not scoped to a tenant."""

    def __init__(self, claim: str, value: object = None) -> None:
        """Initialize the error.

        Args:
            claim: Name of the missing or malformed claim.
            value: The malformed value, if one was present.
        """
        if value is None:
            message = f"Token has no '{claim}' claim"
        else:
            message = f"Token claim '{claim}' is not a tenant identifier"
        super().__init__(message)
        self.claim = claim


class TenantMismatch(IsolationError):
    """Raised when two sources of tenant scope disagree within one request."""

    def __init__(self, expected: UUID | str, actual: UUID | str) -> None:
        """Initialize the error.

        Args:
            expected: Tenant the unit of work was authorized for.
            actual: Tenant found in the competing source.
        """
        super().__init__(f"Tenant context mismatch: expected {expected}, got {actual}")
        self.expected = str(expected)
        self.actual = str(actual)


class TenantInactive(IsolationError):
    """Raised when the resolved tenant does not exist or is disabled."""

    def __init__(self, tenant_id: UUID | str) -> None:
        """Initialize the error.

        Args:
            tenant_id: The tenant that is missing or soft-disabled.
        """
        super().__init__(f"Tenant is not active: {tenant_id}")
        self.tenant_id = str(tenant_id)


class PolicyViolation(IsolationError):
    """Raised when the storage engine rejects a write under a tenant policy.

    Also raised when a targeted update or delete matched no row visible to
    the bound tenant, so the rejection is never mistaken for success.

    Attributes:
        table: Table the write targeted, when known.
        original_error: The underlying database error, when there is one.
    """

    def __init__(
        self,
        message: str,
        table: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            table: Table the write targeted.
            original_error: The underlying database error.
        """
        super().__init__(message)
        self.message = message
        self.table = table
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class MisconfiguredPrivilege(IsolationError):
    """Raised when the connecting role can bypass row-level security."""

    def __init__(self, role: str, superuser: bool, bypass_rls: bool) -> None:
        """Initialize the error.

        Args:
            role: The offending role name.
            superuser: Whether the role is a superuser.
            bypass_rls: Whether the role has BYPASSRLS.
        """
        flags = [name for name, on in (("SUPERUSER", superuser), ("BYPASSRLS", bypass_rls)) if on]
        super().__init__(
            f"Role '{role}' has {' and '.join(flags)}; row-level security is not enforced for it"
        )
        self.role = role
        self.superuser = superuser
        self.bypass_rls = bypass_rls


class StaleBinding(IsolationError):
    """Raised when a connection's tenant binding is not the one just requested."""

    def __init__(self, expected: UUID | str, actual: str | None) -> None:
        """Initialize the error.

        Args:
            expected: Tenant the unit of work bound.
            actual: Value read back from the session.
        """
        super().__init__(
            f"Tenant binding read back as {actual!r}, expected '{expected}'"
        )
        self.expected = str(expected)
        self.actual = actual


class UnscopedSessionError(IsolationError):
    """Raised when a tenant-scoped handle is used outside its unit of work."""

    pass
