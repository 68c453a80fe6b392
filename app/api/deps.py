from fastapi import Header

from app.core.errors import InvalidInputError

TENANT_HEADER = "X-Tenant-ID"


def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias=TENANT_HEADER)) -> int:
    # The gateway authenticates the caller and stamps the resolved tenant.
    raw = (x_tenant_id or "").strip()
    if not raw:
        raise InvalidInputError(f"{TENANT_HEADER} header is required", field=TENANT_HEADER)
    try:
        tenant_id = int(raw)
    except ValueError as exc:
        raise InvalidInputError(f"{TENANT_HEADER} must be an integer", field=TENANT_HEADER) from exc
    if tenant_id <= 0:
        raise InvalidInputError(f"{TENANT_HEADER} must be positive", field=TENANT_HEADER)
    return tenant_id
