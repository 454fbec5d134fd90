import logging
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from app.types.exceptions import IdentityProviderError

studio_error_logger = logging.getLogger("studio.error")


class ExternalIdentity(BaseModel):
    """
    The identity of a user, as returned by an external identity provider
    """

    id: str
    email: str
    name: str
    avatar: str | None = None
    # The access token delivered by the provider. It is forwarded to clients through the userinfo endpoint.
    provider_token: str | None = None


class BaseIdentityProvider:
    """
    Users authenticate on the authorization server using an external OAuth identity provider.

    To add a new provider, you should create a new class inheriting from `BaseIdentityProvider` and override its methods
    """

    name: str

    def get_authorization_url(self, state: str, redirect_uri: str) -> str:
        """
        Return the url the user should be redirected to, to log in on the provider
        """
        raise NotImplementedError

    async def fetch_identity(self, code: str, redirect_uri: str) -> ExternalIdentity:
        """
        Exchange the authorization `code` returned by the provider and fetch the identity of the user.

        Raise an `IdentityProviderError` if the code is refused or if the provider does not return a usable identity.
        """
        raise NotImplementedError


class GitHubIdentityProvider(BaseIdentityProvider):
    """
    See https://docs.github.com/en/apps/oauth-apps/building-oauth-apps/authorizing-oauth-apps
    """

    name = "github"

    authorization_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    api_base_url = "https://api.github.com"

    # `repo` allows clients to commit on behalf of the user using the forwarded GitHub token
    scope = "read:user user:email repo"

    def __init__(self, client_id: str, client_secret: str):
        self.client_id = client_id
        self.client_secret = client_secret

    def get_authorization_url(self, state: str, redirect_uri: str) -> str:
        parameters = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope,
            "state": state,
            "allow_signup": "true",
        }
        return f"{self.authorization_endpoint}?{urlencode(parameters)}"

    async def fetch_identity(self, code: str, redirect_uri: str) -> ExternalIdentity:
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                access_token = await self._exchange_code(
                    client=client,
                    code=code,
                    redirect_uri=redirect_uri,
                )
                headers = {
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/vnd.github+json",
                }

                response = await client.get(
                    f"{self.api_base_url}/user",
                    headers=headers,
                )
                response.raise_for_status()
                github_user = response.json()

                email = github_user.get("email")
                if not email:
                    # The user may hide their email on their public profile
                    response = await client.get(
                        f"{self.api_base_url}/user/emails",
                        headers=headers,
                    )
                    response.raise_for_status()
                    email = next(
                        (
                            github_email["email"]
                            for github_email in response.json()
                            if github_email.get("primary")
                            and github_email.get("verified")
                        ),
                        None,
                    )
        except (httpx.HTTPError, ValueError) as error:
            # ValueError: GitHub answered with a body which is not json
            studio_error_logger.exception("GitHub: could not fetch the user identity")
            raise IdentityProviderError("github_auth_failed") from error

        if not email:
            raise IdentityProviderError("github_no_email")

        return ExternalIdentity(
            id=str(github_user["id"]),
            email=email,
            name=github_user.get("name") or github_user["login"],
            avatar=github_user.get("avatar_url"),
            provider_token=access_token,
        )

    async def _exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
    ) -> str:
        response = await client.post(
            self.token_endpoint,
            headers={"Accept": "application/json"},
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        response.raise_for_status()
        result = response.json()

        # GitHub returns a 200 response containing an `error` field when the code is refused
        if "access_token" not in result:
            studio_error_logger.warning(
                f"GitHub: authorization code refused: {result.get('error')}",
            )
            raise IdentityProviderError("github_auth_failed")

        return result["access_token"]
