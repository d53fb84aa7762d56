from typing import Annotated

from fastapi import APIRouter, Depends

from gatekeeper.db import models
from gatekeeper.utils.auth import TokenIssuer
from gatekeeper.utils.dependencies import get_current_identity, get_token_issuer
from gatekeeper.utils.errors import AuthFailure, raise_for_failure

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={401: {"description": "Not authenticated"}},
)


@router.post("/login")
def login(
    credentials: models.LoginRequest,
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
) -> models.TokenPair:
    result = issuer.login(credentials.username, credentials.password)
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return result


@router.post("/logout")
def logout(
    identity: Annotated[models.TokenPayload, Depends(get_current_identity)],
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
) -> models.MessageResponse:
    """
    Close the caller's session.

    The stored record is removed, so the refresh token stops working at once
    and the access token is good only until it expires.
    """
    result = issuer.logout(identity.username)
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return models.MessageResponse(message=f"Session closed for user {identity.username}")
