"""Login flow and token endpoint calls for the Stromer portal."""

import json
import logging
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

import httpx

from .const import (
    API_BASE_URL,
    CSRF_COOKIE,
    ERROR_BODY_MAX_LENGTH,
    HTTPX_TIMEOUT,
    OAUTH_SCOPE,
)
from .exception import (
    AuthErrorKind,
    AuthStep,
    RefreshErrorKind,
    StromerAuthException,
    StromerRefreshException,
)
from .models import ApiVariant, Credentials, TokenSet
from .utils import CookieJar, cookie_header, merge_cookies

_LOGGER = logging.getLogger(__name__)


class StromerAuth:
    """Emulates the Stromer portal web login to obtain OAuth tokens.

    The login is a four step exchange (login page, credential submit,
    authorize redirect, code exchange). Redirects are never followed
    automatically and the session cookies are carried explicitly from one
    step to the next.
    """

    def __init__(
        self,
        client_session: httpx.AsyncClient,
        base_url: str = API_BASE_URL,
        unique_id: str | None = None,
    ) -> None:
        """Initialize the Stromer authentication."""
        self.client_session = client_session
        self.base_url = base_url
        self.latest_call_code: int | None = None
        self.logger = _LOGGER.getChild(unique_id) if unique_id else _LOGGER

    def get_status_code(self) -> int | None:
        return self.latest_call_code

    def token_url(self, variant: ApiVariant) -> str:
        return urljoin(self.base_url, variant.token_path)

    async def async_authenticate(self, credentials: Credentials) -> TokenSet:
        """Run the full login flow and return a fresh token set."""

        variant = credentials.variant
        self.logger.debug(
            "Starting authentication (%s API, client id %s)",
            variant.name,
            credentials.client_id,
        )

        jar: CookieJar = {}
        try:
            jar = await self._async_get_login_page(variant)
            location, jar = await self._async_submit_credentials(
                credentials, variant, jar
            )
            code = await self._async_get_code(location, jar)
            return await self._async_exchange_code(credentials, variant, code)
        except httpx.HTTPError as exc:
            self.logger.debug("Transport error during authentication: %s", exc)
            raise StromerAuthException(
                f"Network error during authentication: {exc}",
                AuthErrorKind.NETWORK_ERROR,
            ) from exc
        finally:
            self._forget_cookies(jar)

    async def async_refresh_token(
        self, credentials: Credentials, refresh_token: str | None
    ) -> TokenSet:
        """Exchange a refresh token for a new token set."""

        if not refresh_token:
            raise StromerRefreshException(
                "No refresh token available", RefreshErrorKind.NO_REFRESH_TOKEN
            )

        token_request = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": credentials.client_id,
            **(
                {"client_secret": credentials.client_secret}
                if credentials.client_secret
                else {}
            ),
        }

        self.logger.debug(
            "Call token endpoint with grant_type=%s", token_request["grant_type"]
        )

        try:
            response = await self.client_session.post(
                self.token_url(credentials.variant),
                data=token_request,
                timeout=HTTPX_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            raise StromerRefreshException(
                f"Token refresh failed: {exc}", RefreshErrorKind.REFRESH_FAILED
            ) from exc

        self.latest_call_code = response.status_code

        if response.is_error:
            raise StromerRefreshException(
                self._refresh_error_reason(response),
                RefreshErrorKind.REFRESH_FAILED,
                response.status_code,
            )

        try:
            token_set = TokenSet.from_token_response(
                response.json(), previous_refresh_token=refresh_token
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StromerRefreshException(
                "Invalid token refresh response",
                RefreshErrorKind.REFRESH_FAILED,
                response.status_code,
            ) from exc

        self.logger.debug("Access token refreshed, valid until %s", token_set.expires_at)
        return token_set

    async def _async_get_login_page(self, variant: ApiVariant) -> CookieJar:
        """Step 1: fetch the login page for its session and CSRF cookies."""

        self.logger.debug("Step 1: GET login page")
        response = await self.client_session.get(
            urljoin(self.base_url, variant.login_path),
            follow_redirects=False,
            timeout=HTTPX_TIMEOUT,
        )
        self.latest_call_code = response.status_code

        jar = merge_cookies({}, response)
        if CSRF_COOKIE not in jar:
            raise StromerAuthException(
                "CSRF token not found in login page cookies",
                AuthErrorKind.PROTOCOL_ERROR,
                AuthStep.LOGIN_PAGE,
                response.status_code,
            )

        self.logger.debug("Cookies extracted: %s", ", ".join(jar))
        return jar

    async def _async_submit_credentials(
        self, credentials: Credentials, variant: ApiVariant, jar: CookieJar
    ) -> tuple[str, CookieJar]:
        """Step 2: post the login form, returning the redirect and updated jar."""

        login_url = urljoin(self.base_url, variant.login_path)
        oauth_params = {
            "client_id": credentials.client_id,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            variant.redirect_param: variant.login_redirect_uri,
        }
        data = {
            "username": credentials.email,
            "password": credentials.password,
            "csrfmiddlewaretoken": jar[CSRF_COOKIE],
            "next": f"{variant.authorize_path}?{urlencode(oauth_params)}",
        }

        self.logger.debug("Step 2: POST credentials")
        response = await self.client_session.post(
            login_url,
            data=data,
            headers={"Referer": login_url, "Cookie": cookie_header(jar)},
            follow_redirects=False,
            timeout=HTTPX_TIMEOUT,
        )
        self.latest_call_code = response.status_code

        jar = merge_cookies(jar, response)

        if not (location := response.headers.get("location")):
            self.logger.debug(
                "No redirect after login, response: %s",
                response.text[:ERROR_BODY_MAX_LENGTH],
            )
            raise StromerAuthException(
                "No redirect location received, check username and password",
                AuthErrorKind.INVALID_CREDENTIALS,
                AuthStep.LOGIN_SUBMIT,
                response.status_code,
            )

        return location, jar

    async def _async_get_code(self, location: str, jar: CookieJar) -> str:
        """Step 3: follow the authorize redirect and pick up the code."""

        self.logger.debug("Step 3: follow redirect to authorization endpoint")
        response = await self.client_session.get(
            urljoin(self.base_url, location),
            headers={"Cookie": cookie_header(jar)},
            follow_redirects=False,
            timeout=HTTPX_TIMEOUT,
        )
        self.latest_call_code = response.status_code

        if not (code_location := response.headers.get("location")):
            raise StromerAuthException(
                "No authorization code redirect received",
                AuthErrorKind.PROTOCOL_ERROR,
                AuthStep.AUTHORIZE,
                response.status_code,
            )

        if not (codes := parse_qs(urlparse(code_location).query).get("code")):
            raise StromerAuthException(
                "Authorization code not found in redirect",
                AuthErrorKind.PROTOCOL_ERROR,
                AuthStep.AUTHORIZE,
                response.status_code,
            )

        self.logger.debug("Authorization code obtained: %s...", codes[0][:8])
        return codes[0]

    async def _async_exchange_code(
        self, credentials: Credentials, variant: ApiVariant, code: str
    ) -> TokenSet:
        """Step 4: exchange the authorization code for tokens."""

        token_request = {
            "grant_type": "authorization_code",
            "client_id": credentials.client_id,
            "code": code,
            "redirect_uri": variant.token_redirect_uri,
            **(
                {"client_secret": credentials.client_secret}
                if credentials.client_secret
                else {}
            ),
        }

        self.logger.debug(
            "Step 4: call token endpoint with grant_type=%s",
            token_request["grant_type"],
        )

        response = await self.client_session.post(
            self.token_url(variant), data=token_request, timeout=HTTPX_TIMEOUT
        )
        self.latest_call_code = response.status_code

        if response.is_error:
            raise StromerAuthException(
                f"Token exchange failed ({response.status_code}): "
                f"{response.text[:ERROR_BODY_MAX_LENGTH]}",
                AuthErrorKind.PROTOCOL_ERROR,
                AuthStep.TOKEN_EXCHANGE,
                response.status_code,
            )

        try:
            token_set = TokenSet.from_token_response(response.json())
        except (KeyError, TypeError, ValueError) as exc:
            raise StromerAuthException(
                "Token response without access token",
                AuthErrorKind.PROTOCOL_ERROR,
                AuthStep.TOKEN_EXCHANGE,
                response.status_code,
            ) from exc

        self.logger.debug("Access token acquired, valid until %s", token_set.expires_at)
        return token_set

    def _forget_cookies(self, jar: CookieJar) -> None:
        """Drop login cookies the shared client may have collected."""
        for name in jar:
            self.client_session.cookies.delete(name)

    @staticmethod
    def _refresh_error_reason(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and (
            reason := payload.get("error_description") or payload.get("error")
        ):
            return str(reason)
        return response.text[:ERROR_BODY_MAX_LENGTH] or "Token refresh failed"
