"""
api/dependencies.py -- FastAPI Depends() helpers that bind a request to its session.

get_request_context() resolves the session cookie to a Session:
  - cookie present and the session is live -> that session, expiry renewed
  - no cookie, unknown id, or expired       -> a fresh anonymous session,
                                               held in memory only

Every request therefore runs against exactly one session. An anonymous one
is written to the store only if the request logs it in. The route decides
afterwards whether the cookie is renewed or cleared (see finish_session() in
api/routes/v1/auth.py).

These are plain `def` dependencies: they do blocking store I/O, so FastAPI
runs them in its worker thread pool instead of on the event loop.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import RequestContext
from auth.service import AuthService
from auth.sessions import SessionStore
from core.config import get_settings


def get_request_context(request: Request) -> RequestContext:
    sessions: SessionStore = request.app.state.session_store
    session_id = request.cookies.get(get_settings().session_cookie_name, "")
    session = sessions.load(session_id)
    if session is None:
        session = sessions.create()
    else:
        sessions.touch(session)
    return RequestContext(session=session)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service
