from typing import Annotated

from fastapi import APIRouter, Depends

from gatekeeper.db import models
from gatekeeper.utils.dependencies import get_current_identity

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={404: {"description": "Not found"}},
)


@router.get("/me/")
async def read_me(
    identity: Annotated[models.TokenPayload, Depends(get_current_identity)],
) -> models.TokenPayload:
    return identity
