from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from shared.exceptions.RAGErrors import ValidationError


@dataclass(frozen=True)
class CallerIdentity:
    """Identity verified by the upstream auth layer and trusted as-is."""

    student_id: str
    tenant_id: str


async def verify_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    """Verify the X-API-Key header against APP_API_KEY.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("APP_API_KEY")
    if not x_api_key or x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def get_tenant_id(x_tenant_id: str | None = Header(default=None)) -> str:
    """Read the caller's tenant from X-Tenant-Id.

    Raises:
        ValidationError: If the header is missing or blank.
    """
    if not x_tenant_id or not x_tenant_id.strip():
        raise ValidationError("X-Tenant-Id header is required.")
    return x_tenant_id.strip()


async def get_caller_identity(
    x_student_id: str | None = Header(default=None),
    x_tenant_id: str | None = Header(default=None),
) -> CallerIdentity:
    """Read the verified (student, tenant) pair from X-Student-Id and X-Tenant-Id.

    Raises:
        ValidationError: If either header is missing or blank.
    """
    if not x_student_id or not x_student_id.strip():
        raise ValidationError("X-Student-Id header is required.")
    tenant_id = await get_tenant_id(x_tenant_id)
    return CallerIdentity(student_id=x_student_id.strip(), tenant_id=tenant_id)
