"""
Redirect URIs are never registered as free-form input.

A client registers its website origin and optionally a preview url pattern (ex: `https://*.vercel.app`).
The only accepted redirect URIs are the Studio callback on these origins.
"""

import logging
import re
from urllib.parse import urlsplit

from pydantic import BaseModel

STUDIO_CALLBACK_PATH = "/__nuxt_studio/auth/sso"

LOCAL_HOSTNAMES = ("localhost", "127.0.0.1")

studio_error_logger = logging.getLogger("studio.error")


class UrlValidation(BaseModel):
    """
    Result of a url validation: either the normalized `url` or an `error` explaining why the url was refused
    """

    url: str | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.url is not None


def build_callback_url(website_url: str) -> str:
    """
    Return the Studio callback url of a website: `https://docs.example.com/` -> `https://docs.example.com/__nuxt_studio/auth/sso`
    """
    return website_url.removesuffix("/") + STUDIO_CALLBACK_PATH


def compile_preview_url_pattern(preview_url_pattern: str) -> re.Pattern[str] | None:
    """
    Compile a preview url pattern into a regex matching the Studio callback of the preview deployments.

    All regex metacharacters are escaped, then each `*` is replaced by `[^/?#@\\]+`: a wildcard never spans multiple
    path segments and never matches the start of a query, a fragment or a userinfo.
    The callback path is appended and the regex must match the whole url.

    Return None if the pattern can not be compiled.
    """
    escaped_pattern = re.escape(preview_url_pattern.removesuffix("/"))
    regex = escaped_pattern.replace(r"\*", r"[^/?#@\\]+") + re.escape(STUDIO_CALLBACK_PATH)
    try:
        return re.compile(regex)
    except re.error:
        studio_error_logger.exception(
            f"Invalid preview url pattern {preview_url_pattern}",
        )
        return None


def is_origin_and_path(url: str) -> bool:
    try:
        parsed_url = urlsplit(url)
    except ValueError:
        return False

    if parsed_url.query or parsed_url.fragment or "?" in url or "#" in url:
        return False
    if "@" in parsed_url.netloc or "\\" in url:
        return False
    return all(segment not in (".", "..") for segment in parsed_url.path.split("/"))


def validate_redirect_uri(
    redirect_uri: str,
    website_url: str,
    preview_url_pattern: str | None = None,
) -> bool:
    """
    Check that `redirect_uri` is the callback of the website or of one of its preview deployments.

    The comparison with the website callback is a strict string equality.
    A preview callback is only an origin and a path: a query, a fragment, a userinfo or a dot segment is refused.
    """
    if redirect_uri == build_callback_url(website_url):
        return True

    if preview_url_pattern and is_origin_and_path(redirect_uri):
        preview_regex = compile_preview_url_pattern(preview_url_pattern)
        if preview_regex is not None and preview_regex.fullmatch(redirect_uri):
            return True

    return False


def validate_website_url(website_url: str) -> UrlValidation:
    """
    Validate the origin of a website registered as a client.

    The url must use https, except for local development hosts, and must not contain a path, a query or a fragment.
    The callback path is added automatically.
    """
    try:
        parsed_url = urlsplit(website_url.strip())
        # Accessing the port validates it
        parsed_url.port  # noqa: B018
    except ValueError:
        return UrlValidation(error=f"Invalid website URL: {website_url}")

    if parsed_url.scheme not in ("http", "https") or not parsed_url.hostname:
        return UrlValidation(error=f"Invalid website URL: {website_url}")

    if parsed_url.scheme == "http" and parsed_url.hostname not in LOCAL_HOSTNAMES:
        return UrlValidation(
            error="Website URL must use https, except for localhost",
        )

    if parsed_url.path not in ("", "/") or parsed_url.query or parsed_url.fragment:
        return UrlValidation(
            error="Website URL should not include a path. The callback path will be added automatically.",
        )

    return UrlValidation(url=f"{parsed_url.scheme}://{parsed_url.netloc}")


def validate_preview_url_pattern(preview_url_pattern: str) -> UrlValidation:
    """
    A preview url pattern is an origin template where `*` may replace a part of the hostname, ex: `https://*.vercel.app`
    """
    if not preview_url_pattern.startswith(("https://", "http://")):
        return UrlValidation(
            error="Preview URL pattern must start with https:// or http://",
        )

    try:
        hostname = urlsplit(preview_url_pattern).hostname
    except ValueError:
        return UrlValidation(
            error=f"Invalid preview URL pattern: {preview_url_pattern}",
        )

    if preview_url_pattern.startswith("http://") and hostname not in LOCAL_HOSTNAMES:
        return UrlValidation(
            error="Preview URL pattern must use https, except for localhost",
        )
    return UrlValidation(url=preview_url_pattern.removesuffix("/"))
