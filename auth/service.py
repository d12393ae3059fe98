"""
auth/service.py -- Registration, login, logout and password-reset orchestration.

AuthService owns the decision logic; everything it touches is injected:

  users     -- UserStore (the user directory)
  tokens    -- TokenStore (reset tokens, "reset:<token>" -> user id)
  sessions  -- SessionStore (server-side session state)
  mailer    -- Mailer (reset links)

Every call receives the RequestContext of the request it serves. There is no
ambient request state.

Error policy:
  Expected, user-correctable outcomes (bad input, unknown user, wrong
  password, expired token, taken username) come back as FieldError lists in an
  AuthResult. Store failures (SQLAlchemyError, RedisError) are not caught here
  and reach the API layer as hard failures. The one exception is mail: a
  failed send is logged and forgot_password still answers True.

Enumeration:
  forgot_password answers True whether or not the address is registered.
  login keeps distinct "user not found" / "password not correct" messages
  (clients rely on the field names) but runs bcrypt on both paths so the
  response time does not add a second signal.
"""

from __future__ import annotations

import logging
from html import escape

from auth.mailer import Mailer
from auth.models import AuthResult, RequestContext, UniqueViolation, User
from auth.passwords import burn_verify, hash_password, verify_password
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenStore, generate_reset_token, reset_key
from auth.validation import validate_new_password, validate_register
from core.config import get_settings

logger = logging.getLogger("threadline.auth")


class AuthService:
    def __init__(
        self,
        *,
        users: UserStore,
        tokens: TokenStore,
        sessions: SessionStore,
        mailer: Mailer,
        frontend_url: str | None = None,
        reset_token_ttl: int | None = None,
    ) -> None:
        settings = get_settings()
        self._users = users
        self._tokens = tokens
        self._sessions = sessions
        self._mailer = mailer
        self._frontend_url = (frontend_url or settings.frontend_url).rstrip("/")
        self._reset_token_ttl = reset_token_ttl or settings.reset_token_ttl_seconds

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    def register(self, ctx: RequestContext, username: str, email: str, password: str) -> AuthResult:
        errors = validate_register(username, email, password)
        if errors:
            return AuthResult(errors=errors)

        hashed = hash_password(password)
        created = self._users.create_user(username=username, email=email, hashed_password=hashed)
        if isinstance(created, UniqueViolation):
            logger.info("Registration rejected: duplicate %s", created.field)
            return AuthResult.failure("username", "username already taken")

        self._log_in(ctx, created)
        logger.info("User %d registered", created.id)
        return AuthResult(user=created)

    def login(self, ctx: RequestContext, username_or_email: str, password: str) -> AuthResult:
        """Authenticate by email when the input contains "@", by username otherwise.

        Exactly one lookup runs; an email-shaped input never falls back to a
        username lookup or the other way around.
        """
        if "@" in username_or_email:
            user = self._users.get_by_email(username_or_email)
        else:
            user = self._users.get_by_username(username_or_email)

        if user is None:
            burn_verify(password)
            return AuthResult.failure("usernameOrEmail", "user not found")

        if not verify_password(password, user.hashed_password):
            return AuthResult.failure("password", "password not correct")

        self._log_in(ctx, user)
        return AuthResult(user=user)

    def me(self, ctx: RequestContext) -> User | None:
        """Return the session's user, fetched fresh from the directory.

        None when the session is anonymous or its user has since been deleted.
        """
        if ctx.session is None or ctx.session.user_id is None:
            return None
        return self._users.get_by_id(ctx.session.user_id)

    def logout(self, ctx: RequestContext) -> bool:
        """Destroy the session. Returns False only if the store failed to delete it.

        Safe to call on an already-destroyed or anonymous session.
        """
        if ctx.session is None:
            return True
        ok = self._sessions.destroy(ctx.session)
        ctx.session = None
        return ok

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> bool:
        """Issue a reset token and mail the link. Always returns True.

        No session mutation. Unknown addresses get no token and no mail.
        """
        user = self._users.get_by_email(email)
        if user is None:
            return True

        token = generate_reset_token()
        self._tokens.put(reset_key(token), str(user.id), self._reset_token_ttl)

        link = f"{self._frontend_url}/change-password/{token}"
        try:
            self._mailer.send(user.email, f'<a href="{escape(link)}">reset password</a>')
        except Exception:
            logger.exception("Reset mail for user %d could not be sent", user.id)
        return True

    def change_password(self, ctx: RequestContext, token: str, new_password: str) -> AuthResult:
        """Consume a reset token, set the new password and log the user in.

        The token is taken atomically before anything else touches it, so a
        token is spent exactly once even when two requests race with it.
        """
        errors = validate_new_password(new_password)
        if errors:
            return AuthResult(errors=errors)

        user_id = self._tokens.take(reset_key(token))
        if user_id is None:
            return AuthResult.failure("token", "token expired")

        user = self._users.get_by_id(int(user_id))
        if user is None:
            return AuthResult.failure("token", "user not exist")

        updated = self._users.update_password(user.id, hash_password(new_password))
        if updated is None:
            return AuthResult.failure("token", "user not exist")

        self._log_in(ctx, updated)
        logger.info("Password changed for user %d", updated.id)
        return AuthResult(user=updated)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_in(self, ctx: RequestContext, user: User) -> None:
        if ctx.session is None:
            ctx.session = self._sessions.create()
        self._sessions.set_user_id(ctx.session, user.id)
