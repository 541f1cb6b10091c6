"""
Request dependencies — the storefront instance and the caller's identity.

Identity is resolved upstream: an auth layer sets X-User-Id, a guest
client sends its session token as X-Guest-Session.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from storefront._types import OwnerKey
from storefront.pipeline import Storefront


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


def get_owner(
    x_user_id: Annotated[str | None, Header()] = None,
    x_guest_session: Annotated[str | None, Header()] = None,
) -> OwnerKey:
    if x_user_id:
        return OwnerKey.user(x_user_id)
    if x_guest_session:
        return OwnerKey.guest(x_guest_session)
    raise HTTPException(status_code=400, detail="X-User-Id or X-Guest-Session header required")


def get_user(x_user_id: Annotated[str | None, Header()] = None) -> OwnerKey:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return OwnerKey.user(x_user_id)


StorefrontDep = Annotated[Storefront, Depends(get_storefront)]
OwnerDep = Annotated[OwnerKey, Depends(get_owner)]
UserDep = Annotated[OwnerKey, Depends(get_user)]


__all__ = (
    "get_storefront",
    "get_owner",
    "get_user",
    "StorefrontDep",
    "OwnerDep",
    "UserDep",
)
