"""Request-scoped helpers shared by every router.

The caller's identity arrives in headers set by the gateway in front of the
API: ``X-User-Id`` for signed-in customers and ``X-Session-Id`` for
anonymous shoppers.
"""

from dataclasses import dataclass
from typing import Annotated, Generic, TypeVar

from fastapi import Depends, Header
from pydantic import BaseModel

from shared.errors import AccessDenied, ErrorCode
from shared.pagination import Page

T = TypeVar("T")


@dataclass(frozen=True)
class Caller:
    user_id: str | None = None
    session_id: str | None = None


def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_session_id: Annotated[str | None, Header()] = None,
) -> Caller:
    return Caller(user_id=x_user_id or None, session_id=x_session_id or None)


def require_user(caller: Annotated[Caller, Depends(get_caller)]) -> str:
    if not caller.user_id:
        raise AccessDenied(ErrorCode.ACCESS_DENIED, "Sign in required")
    return caller.user_id


CallerDep = Annotated[Caller, Depends(get_caller)]
UserIdDep = Annotated[str, Depends(require_user)]


class StatusResponse(BaseModel):
    status: str = "ok"


class PageResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int


def page_response(page: Page, schema) -> dict:
    return {
        "items": [schema.model_validate(item) for item in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "total_pages": page.total_pages,
    }


def require_admin(x_user_role: Annotated[str | None, Header()] = None) -> None:
    if (x_user_role or "").lower() != "admin":
        raise AccessDenied(ErrorCode.ACCESS_DENIED, "Administrator access required")


AdminDep = Depends(require_admin)
