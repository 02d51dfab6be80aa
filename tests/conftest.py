import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from pystromer.models import API_V3, API_V4, ApiVariant, Credentials
from pystromer.stromer import StromerApi

EMAIL = "rider@example.com"
PASSWORD = "correct horse battery"
CLIENT_ID = "4P3VE9rBYdueKQioWb7nv7"
CLIENT_SECRET = "legacy-client-secret"
BIKE_ID = "12345"
CSRF_TOKEN = "csrf-token-1"
AUTH_CODE = "auth-code-0123456789"

BIKE_STATUS = {
    "battery_SOC": 80,
    "battery_health": 98,
    "motor_temp": 21.5,
    "battery_temp": 19.0,
    "theft_flag": False,
    "light_on": 0,
    "lock_flag": True,
    "bike_lock": True,
    "bike_speed": 0,
    "trip_distance": 12.3,
    "total_distance": 1500.0,
    "average_speed_trip": 24.1,
    "average_speed_total": 23.7,
    "average_energy_consumption": 9,
    "power_on_cycles": 412,
    "total_energy_consumption": 14040,
}

BIKE_POSITION = {"latitude": 47.3769, "longitude": 8.5417, "altitude": 408}

BIKE_DETAILS = {
    "bikeid": 12345,
    "nickname": "Commuter",
    "biketype": "ST3",
    "color": "Deep Black",
    "bikenumber": "ST3-000123",
}


class MemoryStore:
    """Dict backed settings store recording every write."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})
        self.writes: list[str] = []

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.writes.append(key)


class FakeStromerPortal:
    """In-memory Stromer portal serving the web login and bike resources.

    Used as an async handler for httpx.MockTransport. Behaviour is steered
    through the public attributes.
    """

    def __init__(self, variant: ApiVariant = API_V4) -> None:
        self.variant = variant
        self.requests: list[httpx.Request] = []
        self.token_requests: list[dict[str, str]] = []
        self.valid_tokens: set[str] = set()
        self.refresh_tokens: set[str] = set()
        self.issued = 0
        self.expires_in: int | None = 3600
        self.minimal_token_response = False
        self.send_csrf = True
        self.send_code = True
        self.token_status = 200
        self.token_error_body = "server error"
        self.token_payload: Any = None
        self.refresh_status = 200
        self.refresh_delay = 0.0
        self.unauthorized_responses = 0
        self.resource_status: dict[str, int] = {}
        self.resource_delay: dict[str, float] = {}
        self.status = dict(BIKE_STATUS)
        self.position = dict(BIKE_POSITION)
        self.details = dict(BIKE_DETAILS)

    def count(self, path: str, method: str | None = None) -> int:
        return sum(
            1
            for request in self.requests
            if request.url.path == path and (method is None or request.method == method)
        )

    @property
    def refresh_calls(self) -> int:
        return sum(
            1 for form in self.token_requests if form["grant_type"] == "refresh_token"
        )

    def resource(self, path: str) -> str:
        return f"{self.variant.resource_path}{path}"

    def issue_tokens(self) -> dict[str, Any]:
        self.issued += 1
        access_token = f"access-{self.issued}"
        refresh_token = f"refresh-{self.issued}"
        self.valid_tokens.add(access_token)
        self.refresh_tokens.add(refresh_token)
        if self.minimal_token_response:
            return {"access_token": access_token, "refresh_token": refresh_token}
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "expires_in": self.expires_in,
            "scope": "bikestatus bikeposition",
        }

    def revoke_access_tokens(self) -> None:
        self.valid_tokens.clear()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == self.variant.login_path:
            return self._login(request)
        if path == self.variant.authorize_path:
            return self._authorize(request)
        if path == self.variant.token_path:
            return await self._token(request)
        if path.startswith(self.variant.resource_path):
            return await self._resource(
                request, path.removeprefix(self.variant.resource_path)
            )
        return httpx.Response(404, text="not found")

    def _login(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            headers = [("set-cookie", "sessionid=anonymous; Path=/")]
            if self.send_csrf:
                headers.append(("set-cookie", f"csrftoken={CSRF_TOKEN}; Path=/"))
            return httpx.Response(200, headers=headers, text="<form></form>")

        form = _form(request)
        cookie = request.headers.get("cookie", "")
        if (
            f"csrftoken={CSRF_TOKEN}" in cookie
            and form.get("csrfmiddlewaretoken") == CSRF_TOKEN
            and form.get("username") == EMAIL
            and form.get("password") == PASSWORD
        ):
            return httpx.Response(
                302,
                headers=[
                    ("location", form["next"]),
                    ("set-cookie", "sessionid=authenticated; Path=/"),
                ],
            )
        return httpx.Response(
            200, text="Please enter a correct username and password."
        )

    def _authorize(self, request: httpx.Request) -> httpx.Response:
        if "sessionid=authenticated" not in request.headers.get("cookie", ""):
            return httpx.Response(302, headers={"location": self.variant.login_path})
        redirect_uri = request.url.params.get(self.variant.redirect_param)
        if not self.send_code:
            return httpx.Response(
                302, headers={"location": f"{redirect_uri}?error=access_denied"}
            )
        return httpx.Response(
            302, headers={"location": f"{redirect_uri}?code={AUTH_CODE}&state="}
        )

    async def _token(self, request: httpx.Request) -> httpx.Response:
        form = _form(request)
        self.token_requests.append(form)

        if form.get("grant_type") == "authorization_code":
            if self.token_status != 200:
                return httpx.Response(self.token_status, text=self.token_error_body)
            if form.get("code") != AUTH_CODE:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return self._token_response()

        if form.get("grant_type") == "refresh_token":
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if self.refresh_status != 200:
                return httpx.Response(
                    self.refresh_status,
                    json={
                        "error": "invalid_grant",
                        "error_description": "Refresh token expired",
                    },
                )
            if form.get("refresh_token") not in self.refresh_tokens:
                return httpx.Response(400, json={"error": "invalid_grant"})
            # refresh tokens are single use
            self.refresh_tokens.discard(form["refresh_token"])
            return self._token_response()

        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _token_response(self) -> httpx.Response:
        if self.token_payload is not None:
            return httpx.Response(200, json=self.token_payload)
        return httpx.Response(200, json=self.issue_tokens())

    async def _resource(self, request: httpx.Request, path: str) -> httpx.Response:
        if delay := self.resource_delay.get(path):
            await asyncio.sleep(delay)

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        if self.unauthorized_responses > 0:
            self.unauthorized_responses -= 1
            return httpx.Response(401, json={"detail": "Invalid token."})
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"detail": "Invalid token."})

        if status := self.resource_status.get(path):
            return httpx.Response(status, text="unavailable")

        if path == "bike/":
            return httpx.Response(200, json={"data": [self.details]})
        if path == f"bike/{BIKE_ID}/state/":
            return httpx.Response(200, json={"data": [self.status]})
        if path == f"bike/{BIKE_ID}/position/":
            return httpx.Response(200, json={"data": [self.position]})
        if path == f"bike/{BIKE_ID}/":
            return httpx.Response(200, json={"data": [self.details]})
        if path.startswith(f"bike/{BIKE_ID}/statistics/"):
            return httpx.Response(200, json={"data": [{"total_distance": 120.5}]})
        if path in (f"bike/{BIKE_ID}/light/", f"bike/{BIKE_ID}/settings/"):
            return httpx.Response(200, json=json.loads(request.content))
        if path == f"bike/id/{BIKE_ID}/trip_data/" and request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404, text="not found")


def _form(request: httpx.Request) -> dict[str, str]:
    return {
        key: values[0] for key, values in parse_qs(request.content.decode()).items()
    }


def stored_tokens(
    access_token: str, refresh_token: str | None, expires_in: float
) -> dict[str, Any]:
    expires_at = datetime.now(tz=timezone.utc) + timedelta(seconds=expires_in)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "Bearer",
        "expires_at": expires_at.isoformat(),
    }


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(email=EMAIL, password=PASSWORD, client_id=CLIENT_ID)


@pytest.fixture
def legacy_credentials() -> Credentials:
    return Credentials(
        email=EMAIL, password=PASSWORD, client_id=CLIENT_ID, client_secret=CLIENT_SECRET
    )


@pytest.fixture
def portal() -> FakeStromerPortal:
    return FakeStromerPortal()


@pytest.fixture
def legacy_portal() -> FakeStromerPortal:
    return FakeStromerPortal(API_V3)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest_asyncio.fixture
async def client_session(portal):
    async with httpx.AsyncClient(transport=httpx.MockTransport(portal)) as client:
        yield client


@pytest.fixture
def api(credentials, store, client_session) -> StromerApi:
    return StromerApi(
        credentials=credentials,
        store=store,
        client_session=client_session,
        unique_id="test",
    )
