from typing import Annotated

from fastapi import APIRouter, Depends

from gatekeeper.db import models
from gatekeeper.utils.auth import TokenIssuer
from gatekeeper.utils.dependencies import get_token_issuer
from gatekeeper.utils.errors import AuthFailure, raise_for_failure

router = APIRouter(
    prefix="/token",
    tags=["token"],
    responses={401: {"description": "Not authenticated"}},
)


@router.post("/refresh")
def refresh_access_token(
    body: models.RefreshRequest,
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
) -> models.AccessToken:
    result = issuer.rotate_access(body.username, body.refresh_token)
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    return result
