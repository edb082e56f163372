"""Embedded-app endpoints authenticated with App Bridge session tokens."""

from fastapi import APIRouter

from storegate.core.auth import ShopAuth
from storegate.schemas.common import ErrorResponse
from storegate.schemas.shop import SessionResponse, ShopAuthResponse, ShopResponse

router = APIRouter()


@router.get("", responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def get_shop_auth(context: ShopAuth) -> ShopAuthResponse:
    """Session and shop for the authenticated tenant.

    The first call from a newly installed shop performs the token exchange.
    """
    return ShopAuthResponse(
        session=SessionResponse.model_validate(context.session),
        shop=ShopResponse.model_validate(context.shop),
    )
