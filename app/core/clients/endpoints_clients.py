import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clients import cruds_clients, models_clients, schemas_clients
from app.core.clients.utils_clients import generate_client_secret, hash_client_secret
from app.core.users import models_users
from app.dependencies import (
    get_db,
    get_request_id,
    get_session_user,
    is_user_admin,
)
from app.types.module import CoreModule
from app.utils.auth.redirect_uri import (
    validate_preview_url_pattern,
    validate_website_url,
)

router = APIRouter(tags=["Clients"])

core_module = CoreModule(
    root="clients",
    tag="Clients",
    router=router,
)

studio_security_logger = logging.getLogger("studio.security")


def get_valid_website_url(website_url: str) -> str:
    validation = validate_website_url(website_url)
    if validation.url is None:
        raise HTTPException(status_code=400, detail=validation.error)
    return validation.url


def get_valid_preview_url_pattern(preview_url_pattern: str) -> str:
    validation = validate_preview_url_pattern(preview_url_pattern)
    if validation.url is None:
        raise HTTPException(status_code=400, detail=validation.error)
    return validation.url


async def get_client_or_404(
    db: AsyncSession,
    client_id: str,
) -> models_clients.OAuthClient:
    client = await cruds_clients.get_client_by_id(db=db, client_id=client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get(
    "/clients/websites",
    response_model=list[schemas_clients.Website],
    status_code=200,
)
async def read_websites(
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(get_session_user),
):
    """
    Return the websites where users can use the authorization server, ie. the active clients.

    **The user must be authenticated to use this endpoint**
    """
    return await cruds_clients.get_clients(db=db, only_active=True)


@router.get(
    "/clients/",
    response_model=list[schemas_clients.OAuthClient],
    status_code=200,
)
async def read_clients(
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
):
    """
    Return all clients, including inactive ones

    **This endpoint is only usable by administrators**
    """
    return await cruds_clients.get_clients(db=db)


@router.post(
    "/clients/",
    response_model=schemas_clients.OAuthClientWithSecret,
    status_code=201,
)
async def create_client(
    client: schemas_clients.OAuthClientCreation,
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
    request_id: str = Depends(get_request_id),
):
    """
    Register a new website. The client secret is returned only once and can not be retrieved afterwards.

    **This endpoint is only usable by administrators**
    """
    website_url = get_valid_website_url(client.website_url)
    preview_url_pattern = (
        get_valid_preview_url_pattern(client.preview_url_pattern)
        if client.preview_url_pattern
        else None
    )

    client_secret = generate_client_secret()
    db_client = await cruds_clients.create_client(
        db=db,
        client=models_clients.OAuthClient(
            id=str(uuid.uuid4()),
            secret_hash=hash_client_secret(client_secret),
            name=client.name,
            website_url=website_url,
            preview_url_pattern=preview_url_pattern,
            owner_id=user.id,
            created_on=datetime.now(UTC),
            is_active=True,
        ),
    )

    studio_security_logger.info(
        f"Clients: Client {db_client.id} for {website_url} created by user {user.id} ({request_id})",
    )

    return schemas_clients.OAuthClientWithSecret(
        **schemas_clients.OAuthClient.model_validate(db_client).model_dump(
            exclude={"callback_url"},
        ),
        client_secret=client_secret,
    )


@router.get(
    "/clients/{client_id}",
    response_model=schemas_clients.OAuthClient,
    status_code=200,
)
async def read_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
):
    """
    **This endpoint is only usable by administrators**
    """
    return await get_client_or_404(db=db, client_id=client_id)


@router.patch(
    "/clients/{client_id}",
    response_model=schemas_clients.OAuthClient,
    status_code=200,
)
async def update_client(
    client_id: str,
    client_update: schemas_clients.OAuthClientUpdate,
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
):
    """
    Update a client. An empty `preview_url_pattern` removes the pattern.
    A deactivated client can not start new authorizations nor use its tokens.

    **This endpoint is only usable by administrators**
    """
    client = await get_client_or_404(db=db, client_id=client_id)

    values = client_update.model_dump(exclude_unset=True, exclude_none=True)
    if "website_url" in values:
        values["website_url"] = get_valid_website_url(values["website_url"])
    if "preview_url_pattern" in values:
        values["preview_url_pattern"] = (
            get_valid_preview_url_pattern(values["preview_url_pattern"])
            if values["preview_url_pattern"]
            else None
        )

    if not values:
        raise HTTPException(status_code=400, detail="No fields to update")

    await cruds_clients.update_client(db=db, client_id=client_id, **values)
    await db.refresh(client)
    return client


@router.delete(
    "/clients/{client_id}",
    status_code=204,
)
async def delete_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
    request_id: str = Depends(get_request_id),
):
    """
    Delete a client, its authorization codes and its refresh tokens

    **This endpoint is only usable by administrators**
    """
    await get_client_or_404(db=db, client_id=client_id)
    await cruds_clients.delete_client(db=db, client_id=client_id)

    studio_security_logger.info(
        f"Clients: Client {client_id} deleted by user {user.id} ({request_id})",
    )
    return Response(status_code=204)


@router.post(
    "/clients/{client_id}/secret",
    response_model=schemas_clients.OAuthClientWithSecret,
    status_code=200,
)
async def rotate_client_secret(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    user: models_users.CoreUser = Depends(is_user_admin),
    request_id: str = Depends(get_request_id),
):
    """
    Generate a new secret for the client. The previous secret stops working immediately.

    **This endpoint is only usable by administrators**
    """
    client = await get_client_or_404(db=db, client_id=client_id)

    client_secret = generate_client_secret()
    await cruds_clients.update_client(
        db=db,
        client_id=client_id,
        secret_hash=hash_client_secret(client_secret),
    )
    await db.refresh(client)

    studio_security_logger.info(
        f"Clients: Secret of client {client_id} rotated by user {user.id} ({request_id})",
    )

    return schemas_clients.OAuthClientWithSecret(
        **schemas_clients.OAuthClient.model_validate(client).model_dump(
            exclude={"callback_url"},
        ),
        client_secret=client_secret,
    )
