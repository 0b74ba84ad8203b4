import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from callmaker.config import Settings
from callmaker.http.rate_limit import InMemoryRateLimiter
from callmaker.http.session import JwtSessionResolver
from callmaker.main import create_app
from callmaker.roles import Role

TEST_SECRET = "test-session-secret-0123456789abcdef"


class FakeClock:
    """Manually advanced epoch clock for window tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    # the suite drives per-IP budgets through X-Forwarded-For
    return Settings(
        environment="test",
        session_secret=TEST_SECRET,
        log_format="console",
        trust_proxy_headers=True,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def make_token(settings):
    resolver = JwtSessionResolver.from_settings(settings)

    def _token(
        *,
        user_id: str = "user-1",
        role=Role.USER,
        organization_id="org-1",
        email: str = "user@example.com",
        **kwargs,
    ) -> str:
        return resolver.issue_token(
            user_id=user_id,
            email=email,
            role=role,
            organization_id=organization_id,
            **kwargs,
        )

    return _token


@pytest.fixture
def auth_headers(make_token):
    def _headers(**kwargs) -> dict:
        return {"Authorization": f"Bearer {make_token(**kwargs)}"}

    return _headers


@pytest.fixture
def app(settings, limiter):
    return create_app(settings, rate_limiter=limiter)


@pytest.fixture
def pipeline(app):
    return app.state.pipeline


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def make_request():
    """Bare Starlette request for exercising a single stage."""

    def _request(
        *,
        method: str = "POST",
        path: str = "/api/test",
        headers: dict = None,
        body: bytes = b"",
        client=("10.0.0.9", 51000),
        path_params: dict = None,
    ) -> Request:
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
            "client": client,
            "path_params": path_params or {},
        }

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)

    return _request
