from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clients import cruds_clients, models_clients
from app.core.utils import security


def generate_client_secret() -> str:
    return security.generate_token(32)


def hash_client_secret(client_secret: str) -> str:
    return security.hash_token(client_secret)


async def get_client(
    db: AsyncSession,
    client_id: str,
) -> models_clients.OAuthClient | None:
    """
    Return the client with the given id. Inactive clients are considered as unknown.
    """
    return await cruds_clients.get_active_client_by_id(db=db, client_id=client_id)


async def verify_client_credentials(
    db: AsyncSession,
    client_id: str,
    client_secret: str,
) -> models_clients.OAuthClient | None:
    """
    Return the client if `client_secret` is its secret, None otherwise.

    The secret digest is compared with the stored digest in constant time.
    An unknown client and a wrong secret are not distinguished.
    """
    client = await get_client(db=db, client_id=client_id)
    if client is None:
        # We still compute a digest to spend the same time as for a known client
        security.verify_token_hash(client_secret, security.hash_token(""))
        return None

    if not security.verify_token_hash(client_secret, client.secret_hash):
        return None

    return client
