# Overview: Caller identity, resolved upstream and passed in trusted gateway headers.

from __future__ import annotations

from dataclasses import dataclass

from .errors import ServiceError


ROLE_MERCHANT = "merchant"
ROLE_STAFF = "staff"
ROLE_SHOP = "shop"
ROLES = (ROLE_MERCHANT, ROLE_STAFF, ROLE_SHOP)

HEADER_MERCHANT_ID = "X-Merchant-Id"
HEADER_ACTOR_ID = "X-Actor-Id"
HEADER_ROLE = "X-Actor-Role"
HEADER_SHOP_ID = "X-Shop-Id"


class IdentityError(ServiceError):
    """Raised when identity headers are missing or malformed."""
    status_code = 401


@dataclass(frozen=True)
class Identity:
    """
    Who is calling, already authenticated by the gateway.

    - merchant: acts for every shop of merchant_id
    - staff: a merchant's employee, bound to shop_id
    - shop: a shop terminal, bound to shop_id
    """
    merchant_id: int
    actor_id: int
    role: str
    shop_id: int | None = None

    @property
    def is_shop_bound(self) -> bool:
        return self.role in (ROLE_STAFF, ROLE_SHOP)

    @property
    def restrict_shop_id(self) -> int | None:
        """Shop the caller is limited to, or None for merchant-wide callers."""
        return self.shop_id if self.is_shop_bound else None


def _header_int(headers, name: str, *, required: bool) -> int | None:
    raw = headers.get(name)
    if raw is None or not raw.strip():
        if required:
            raise IdentityError(f"{name} header required")
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise IdentityError(f"{name} header must be a positive integer")
    return int(raw)


def identity_from_headers(headers) -> Identity:
    merchant_id = _header_int(headers, HEADER_MERCHANT_ID, required=True)
    actor_id = _header_int(headers, HEADER_ACTOR_ID, required=True)

    role = (headers.get(HEADER_ROLE) or "").strip().lower()
    if role not in ROLES:
        raise IdentityError(f"{HEADER_ROLE} header must be one of: {', '.join(ROLES)}")

    shop_id = _header_int(headers, HEADER_SHOP_ID, required=role != ROLE_MERCHANT)
    return Identity(merchant_id=merchant_id, actor_id=actor_id, role=role, shop_id=shop_id)
