"""Unit tests for traveler.security.auth: CAS login flow and session checks."""

from unittest.mock import AsyncMock

import bcrypt
import httpx
import pytest

from traveler.directory.sso import CasClient
from traveler.documents.models import User
from traveler.engine.config import SSOConfig
from traveler.engine.errors import PersistenceError, SessionError, UnauthorizedError
from traveler.security.auth import (
    AuthOutcome,
    TicketAuthenticator,
    check_api_user,
    filter_groups,
    principal_from_session,
    verify_role,
)

SERVICE = "https://traveler.test/login"
LOGIN_URL = "https://cas.test/cas/login?service=https%3A%2F%2Ftraveler.test%2Flogin"


class FakeCas:
    """CAS validate endpoint served through httpx.MockTransport."""

    def __init__(self, body="yes\nalice\n", status=200, error=None):
        self.body = body
        self.status = status
        self.error = error
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text=self.body)


@pytest.fixture
def cas_server():
    return FakeCas()


@pytest.fixture
def cas(cas_server):
    config = SSOConfig(cas_url="https://cas.test/cas/", service_url=SERVICE)
    return CasClient(config, transport=httpx.MockTransport(cas_server.handler))


@pytest.fixture
def authenticator(cas, directory, principals, dispatcher, security_config):
    return TicketAuthenticator(cas, directory, principals, dispatcher, security_config)


@pytest.fixture
def alice_entry(directory_client):
    return directory_client.add_user(
        "alice", "Alice Smith",
        member_of=[
            "CN=LAB.FRIB.Ops,OU=Groups,DC=example,DC=org",
            "CN=Staff,OU=Groups,DC=example,DC=org",
            "CN=lab.frib.cryo,OU=Groups,DC=example,DC=org",
        ],
        telephoneNumber="555-0100",
    )


class TestCasClient:

    @pytest.mark.asyncio
    async def test_validate_sends_service_and_ticket(self, cas, cas_server):
        result = await cas.validate("ST-1")
        assert result.validated is True
        assert result.username == "alice"
        request = cas_server.requests[0]
        assert request.url.path == "/cas/validate"
        assert request.url.params["ticket"] == "ST-1"
        assert request.url.params["service"] == SERVICE

    @pytest.mark.asyncio
    async def test_rejected(self, cas, cas_server):
        cas_server.body = "no\n\n"
        result = await cas.validate("ST-1")
        assert result.validated is False
        assert result.username is None

    def test_login_url(self, cas):
        assert cas.login_url() == LOGIN_URL


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_missing_session(self, authenticator):
        with pytest.raises(SessionError):
            await authenticator.authenticate(None, "/")

    @pytest.mark.asyncio
    async def test_logged_in_proceeds(self, authenticator, cas_server):
        outcome = await authenticator.authenticate({"userid": "alice"}, "/travelers/")
        assert outcome.proceeds
        assert cas_server.requests == []

    @pytest.mark.asyncio
    async def test_logged_in_with_stray_ticket_is_redirected(self, authenticator):
        outcome = await authenticator.authenticate(
            {"userid": "alice"}, "/travelers/?ticket=ST-1&view=all"
        )
        assert outcome.status == 301
        assert outcome.location == "/travelers/?view=all"

    @pytest.mark.asyncio
    async def test_browser_sent_to_login(self, authenticator):
        session = {}
        outcome = await authenticator.authenticate(session, "/binders/b1")
        assert outcome.action == "redirect"
        assert outcome.status == 302
        assert outcome.location == LOGIN_URL
        assert session["landing"] == "/binders/b1"

    @pytest.mark.asyncio
    async def test_xhr_gets_401(self, authenticator):
        session = {}
        outcome = await authenticator.authenticate(session, "/travelers/json", is_xhr=True)
        assert outcome.status == 401
        assert outcome.message == "xhr cannot be authenticated"
        assert outcome.headers["WWW-Authenticate"] == f'CAS realm="{SERVICE}"'
        assert "landing" not in session

    @pytest.mark.asyncio
    async def test_first_login_creates_user(self, authenticator, principals, alice_entry):
        session = {"landing": "/travelers/"}

        outcome = await authenticator.authenticate(session, "/login?ticket=ST-1")

        assert outcome == AuthOutcome.redirect("/travelers/")
        assert session["userid"] == "alice"
        assert session["username"] == "Alice Smith"
        assert session["memberOf"] == ["lab.frib.ops", "ops", "lab.frib.cryo"]
        assert session["roles"] == []
        user = await principals.get_user("alice")
        assert user.name == "Alice Smith"
        assert user.email == "alice@example.org"
        assert user.phone == "555-0100"
        assert user.last_visited_on is not None

    @pytest.mark.asyncio
    async def test_returning_user_keeps_roles(self, authenticator, principals, dispatcher, alice_entry):
        await principals.save_user(User(id="alice", name="Alice Smith", roles=["admin", "manager"]))
        session = {}

        outcome = await authenticator.authenticate(session, "/login?ticket=ST-1")
        await dispatcher.join()

        assert outcome.location == "/"
        assert session["roles"] == ["admin", "manager"]
        user = await principals.get_user("alice")
        assert user.last_visited_on is not None

    @pytest.mark.asyncio
    async def test_landing_on_login_goes_home(self, authenticator, alice_entry):
        session = {"landing": "/login"}
        outcome = await authenticator.authenticate(session, "/login?ticket=ST-1")
        assert outcome.location == "/"

    @pytest.mark.asyncio
    async def test_rejected_ticket_goes_back_to_service(self, authenticator, cas_server):
        cas_server.body = "no\n\n"
        session = {}
        outcome = await authenticator.authenticate(session, "/login?ticket=ST-bad")
        assert outcome.location == SERVICE
        assert "userid" not in session

    @pytest.mark.asyncio
    async def test_cas_error_status(self, authenticator, cas_server):
        cas_server.status = 503
        outcome = await authenticator.authenticate({}, "/login?ticket=ST-1")
        assert outcome.action == "error"
        assert outcome.status == 401

    @pytest.mark.asyncio
    async def test_cas_unreachable(self, authenticator, cas_server):
        cas_server.error = httpx.ConnectError("connection refused")
        outcome = await authenticator.authenticate({}, "/login?ticket=ST-1")
        assert outcome.status == 401
        assert "Cannot reach CAS" in outcome.message

    @pytest.mark.asyncio
    async def test_directory_failure(self, authenticator, directory_client, failing_directory_error):
        directory_client.fail_with = failing_directory_error
        outcome = await authenticator.authenticate({}, "/login?ticket=ST-1")
        assert outcome.status == 500
        assert outcome.message == "something wrong with ad"

    @pytest.mark.asyncio
    async def test_user_not_in_directory(self, authenticator):
        session = {}
        outcome = await authenticator.authenticate(session, "/login?ticket=ST-1")
        assert outcome.status == 500
        assert outcome.message == "alice is not found!"
        assert session["userid"] == "alice"

    @pytest.mark.asyncio
    async def test_user_not_unique(self, authenticator, directory_client):
        directory_client.add_user("alice", "Alice Smith")
        directory_client.add_user("ALICE", "Alice Smith (2)")
        outcome = await authenticator.authenticate({}, "/login?ticket=ST-1")
        assert outcome.message == "alice is not unique!"

    @pytest.mark.asyncio
    async def test_user_create_failure(self, authenticator, principals, alice_entry):
        principals.save_user = AsyncMock(side_effect=PersistenceError("disk full"))
        outcome = await authenticator.authenticate({}, "/login?ticket=ST-1")
        assert outcome.status == 500
        assert outcome.message == "cannot log in. Please contact admin."


class TestFilterGroups:

    def test_prefix_and_aliases(self):
        dns = [
            "CN=LAB.FRIB.Ops,OU=Groups,DC=example",
            "CN=LAB.FRIB.Ops,OU=Legacy,DC=example",
            "CN=Domain Users,OU=Groups,DC=example",
        ]
        groups = filter_groups(dns, "lab.frib", {"lab.frib.ops": "ops"})
        assert groups == ["lab.frib.ops", "ops", "lab.frib.ops"]

    def test_empty(self):
        assert filter_groups([], "lab.frib", {}) == []


class TestSessionChecks:

    def test_verify_role(self):
        verify_role({"userid": "alice", "roles": ["admin"]}, "admin")

    def test_verify_role_missing_role(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            verify_role({"userid": "alice", "roles": ["manager"]}, "admin")
        assert exc_info.value.required == "admin"
        assert exc_info.value.principal_id == "alice"

    def test_verify_role_without_roles(self):
        with pytest.raises(SessionError):
            verify_role({"userid": "alice"}, "admin")

    def test_verify_role_without_session(self):
        with pytest.raises(SessionError):
            verify_role(None, "admin")

    def test_principal_from_session(self):
        principal = principal_from_session({
            "userid": "alice",
            "username": "Alice Smith",
            "roles": ["admin"],
            "memberOf": ["lab.frib.ops", "ops"],
        })
        assert principal.id == "alice"
        assert principal.display_name == "Alice Smith"
        assert principal.has_role("admin")
        assert principal.groups == {"lab.frib.ops", "ops"}

    def test_principal_from_anonymous_session(self):
        with pytest.raises(SessionError):
            principal_from_session({"landing": "/"})


class TestApiUsers:

    def setup_method(self):
        hashed = bcrypt.hashpw(b"s3cret", bcrypt.gensalt(rounds=4)).decode("utf-8")
        self.api_users = {"reader": hashed, "broken": "not-a-bcrypt-hash"}

    def test_valid_password(self):
        assert check_api_user("reader", "s3cret", self.api_users) is True

    def test_wrong_password(self):
        assert check_api_user("reader", "guess", self.api_users) is False

    def test_unknown_user(self):
        assert check_api_user("writer", "s3cret", self.api_users) is False

    def test_missing_credentials(self):
        assert check_api_user(None, None, self.api_users) is False

    def test_invalid_hash(self):
        assert check_api_user("broken", "s3cret", self.api_users) is False
