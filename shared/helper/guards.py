"""Input guards shared by every entry point of the RAG core.

Tenant scope is never inferred or defaulted: each low-level call receives it
explicitly and rejects a missing or blank value.
"""

from shared.exceptions.RAGErrors import ValidationError


def require_tenant_id(tenant_id: str | None) -> str:
    """Return the stripped tenant id or raise.

    Args:
        tenant_id (str | None): The tenant (creator) id supplied by the caller.

    Returns:
        str: The tenant id without surrounding whitespace.

    Raises:
        ValidationError: If the tenant id is missing, not a string or blank.
    """
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValidationError("tenant_id is required for multi-tenant isolation.")
    return tenant_id.strip()


def require_text(value: str | None, field: str) -> str:
    """Return the stripped value or raise if it is missing or blank.

    Args:
        value (str | None): The value to check.
        field (str): Field name used in the error message.

    Raises:
        ValidationError: If the value is missing, not a string or blank.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must not be empty.")
    return value.strip()


def require_positive_int(value: int, field: str) -> int:
    """Raise unless value is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    return value
