"""LINE Login authorization flow for MCP clients.

Routes:
- GET  /authorize: show the approval page, or go straight to LINE when
  this browser already approved the client
- POST /authorize: confirm approval and redirect to LINE
- GET  /callback: exchange the LINE code, resolve the Supabase account and
  hand the grant back to the MCP client

Cookies set along the way:
- __Host-csrf: double-submit CSRF token for the approval form
- __Host-session: sha256 of the state token, ties the callback to this browser
- __Host-approved: signed list of approved client ids
"""

import base64
import binascii
import json
import logging
from enum import Enum

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from config import Config
from oauth.approval import ApprovalCache
from oauth.cookies import CookieDirective, apply_cookies
from oauth.csrf import CSRF_FIELD, CsrfGuard
from oauth.errors import ClientRequestInvalid, IdpFailure, OAuthError, UnexpectedFailure
from oauth.identity import SupabaseIdentityExchange
from oauth.line import LineClient
from oauth.models import AuthRequest, Props
from oauth.provider import OAuthProvider
from oauth.session import SessionBinder
from oauth.stores import StateStore
from oauth.templates import render_approval_page

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1")


class FlowStep(str, Enum):
    START = "start"
    CHECK_APPROVAL = "check_approval"
    SKIP_TO_IDP = "skip_to_idp"
    SHOW_CONSENT = "show_consent"
    CONSENT_SUBMITTED = "consent_submitted"
    REDIRECTED_TO_IDP = "redirected_to_idp"
    CALLBACK_RECEIVED = "callback_received"
    STATE_VALIDATED = "state_validated"
    CODE_EXCHANGED = "code_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    IDENTITY_RESOLVED = "identity_resolved"
    TOKEN_ISSUED = "token_issued"
    FAILED = "failed"


def encode_state(auth_request: AuthRequest) -> str:
    """Encode the not-yet-stored request for the approval form."""
    data = json.dumps({"auth_request": auth_request.model_dump()})
    return base64.urlsafe_b64encode(data.encode("utf-8")).decode("ascii")


def decode_state(encoded: str) -> AuthRequest:
    try:
        data = json.loads(base64.urlsafe_b64decode(encoded.encode("ascii")))
        return AuthRequest.model_validate(data["auth_request"])
    except (binascii.Error, ValueError, KeyError, TypeError, ValidationError):
        raise ClientRequestInvalid("Invalid state data")


class AuthorizationFlow:
    """Drives one browser through approval, LINE Login and token issuance.

    Holds no per-request state; everything a flow needs between requests
    lives in the state store or in the browser's cookies.
    """

    def __init__(
        self,
        config: Config,
        provider: OAuthProvider,
        state_store: StateStore,
        line: LineClient,
        identity: SupabaseIdentityExchange,
    ):
        self.config = config
        self.provider = provider
        self.state_store = state_store
        self.line = line
        self.identity = identity
        self.csrf = CsrfGuard()
        self.session = SessionBinder(ttl_seconds=config.state_ttl)
        self.approvals = ApprovalCache(config.cookie_encryption_key)

    def _step(self, step: FlowStep, detail: str = "") -> None:
        logger.info(f"[FLOW] {step.value}{': ' + detail if detail else ''}")

    def callback_url(self, request: Request) -> str:
        """Callback URL registered with LINE.

        Forced to https unless running locally, since the server usually
        sits behind a TLS-terminating tunnel.
        """
        if self.config.server_url:
            return f"{self.config.server_url}/callback"
        url = request.url.replace(path="/callback", query="", fragment="")
        if url.hostname not in LOCAL_HOSTS:
            url = url.replace(scheme="https")
        return str(url)

    def _redirect_to_line(
        self, request: Request, state_token: str, cookies: list[CookieDirective]
    ) -> RedirectResponse:
        location = self.line.build_authorize_url(
            self.config.line_channel_id,
            self.callback_url(request),
            state_token,
        )
        response = RedirectResponse(url=location, status_code=302)
        apply_cookies(response, cookies)
        self._step(FlowStep.REDIRECTED_TO_IDP)
        return response

    async def _start_login(
        self, request: Request, auth_request: AuthRequest, cookies: list[CookieDirective]
    ) -> RedirectResponse:
        state_token = await self.state_store.save(auth_request, self.config.state_ttl)
        return self._redirect_to_line(request, state_token, cookies + [self.session.bind(state_token)])

    async def authorize_get(self, request: Request):
        self._step(FlowStep.START)
        auth_request = await self.provider.parse_auth_request(request.query_params)
        client_id = auth_request.client_id
        if not client_id:
            raise ClientRequestInvalid("Invalid request")

        self._step(FlowStep.CHECK_APPROVAL, client_id)
        if self.approvals.is_approved(client_id, request.cookies):
            self._step(FlowStep.SKIP_TO_IDP, client_id)
            return await self._start_login(request, auth_request, [])

        csrf_token, csrf_cookie = self.csrf.issue()
        client = await self.provider.lookup_client(client_id)
        client_name = (client.client_name or client.client_id) if client else "Unknown Client"

        self._step(FlowStep.SHOW_CONSENT, client_id)
        html = render_approval_page(
            client_name=client_name,
            server_name=self.config.server_name,
            server_description=self.config.server_description,
            csrf_token=csrf_token,
            state=encode_state(auth_request),
            logo_url=self.config.server_logo,
        )
        return apply_cookies(HTMLResponse(html), [csrf_cookie])

    async def authorize_post(self, request: Request):
        form = await request.form()
        self.csrf.validate(form.get(CSRF_FIELD), request.cookies)

        encoded_state = form.get("state")
        if not encoded_state or not isinstance(encoded_state, str):
            raise ClientRequestInvalid("Missing state in form data")

        auth_request = decode_state(encoded_state)
        if not auth_request.client_id:
            raise ClientRequestInvalid("Invalid request")
        auth_request = await self.provider.validate_auth_request(auth_request)
        self._step(FlowStep.CONSENT_SUBMITTED, auth_request.client_id)

        approved_cookie = self.approvals.approve(auth_request.client_id, request.cookies)
        return await self._start_login(request, auth_request, [approved_cookie, self.csrf.clear()])

    async def _complete(self, request: Request) -> str:
        """Run the callback steps; returns the MCP client redirect URL."""
        query = request.query_params
        state_token = query.get("state", "")
        self._step(FlowStep.CALLBACK_RECEIVED)

        self.session.verify(state_token, request.cookies)
        auth_request = await self.state_store.consume(state_token)
        if not auth_request.client_id:
            raise ClientRequestInvalid("Invalid OAuth request data")
        self._step(FlowStep.STATE_VALIDATED, auth_request.client_id)

        if query.get("error"):
            logger.info(f"[LINE] Login not completed: {query.get('error')} {query.get('error_description', '')}")
            raise IdpFailure("LINE login was not completed", status_code=400, kind="IDP_DENIED")

        code = query.get("code")
        if not code:
            raise ClientRequestInvalid("Missing authorization code")

        line_access_token = await self.line.exchange_code(
            code,
            self.config.line_channel_id,
            self.config.line_channel_secret,
            self.callback_url(request),
        )
        self._step(FlowStep.CODE_EXCHANGED)

        profile = await self.line.fetch_profile(line_access_token)
        self._step(FlowStep.PROFILE_FETCHED, profile.user_id)

        account_id = await self.identity.resolve(profile.user_id)
        self._step(FlowStep.IDENTITY_RESOLVED, account_id)

        redirect_to = await self.provider.complete_authorization(
            request=auth_request,
            user_id=profile.user_id,
            metadata={"label": profile.display_name},
            scope=auth_request.scope,
            props=Props(
                line_user_id=profile.user_id,
                supabase_user_id=account_id,
                display_name=profile.display_name,
            ),
        )
        self._step(FlowStep.TOKEN_ISSUED, auth_request.client_id)
        return redirect_to

    async def callback(self, request: Request):
        # Every outcome clears the session binding cookie
        clear_session = self.session.clear()
        try:
            redirect_to = await self._complete(request)
        except OAuthError as e:
            self._step(FlowStep.FAILED, e.kind)
            return apply_cookies(e.to_response(), [clear_session])
        except Exception:
            logger.exception("[FLOW] Unexpected error in /callback")
            return apply_cookies(UnexpectedFailure().to_response(), [clear_session])

        return apply_cookies(RedirectResponse(url=redirect_to, status_code=302), [clear_session])


async def _run(handler, request: Request, label: str):
    try:
        return await handler(request)
    except OAuthError as e:
        logger.info(f"[FLOW] {FlowStep.FAILED.value}: {label} {e.kind}")
        return e.to_response()
    except Exception:
        logger.exception(f"[FLOW] Unexpected error in {label}")
        return PlainTextResponse("Internal server error", status_code=500)


def build_router(flow: AuthorizationFlow) -> APIRouter:
    """Routes for the LINE authorization flow."""
    router = APIRouter(tags=["oauth"])

    @router.get("/authorize")
    async def authorize(request: Request):
        """OAuth 2.0 Authorization Endpoint."""
        return await _run(flow.authorize_get, request, "GET /authorize")

    @router.post("/authorize")
    async def authorize_submit(request: Request):
        """Handle approval form submission."""
        return await _run(flow.authorize_post, request, "POST /authorize")

    @router.get("/callback")
    async def callback(request: Request):
        """LINE Login redirect target."""
        return await flow.callback(request)

    return router
