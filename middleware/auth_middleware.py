"""
Cookie gating for page routes.

Only the presence of the session cookie is checked here; API routes pass
straight through and are validated by the FastAPI dependencies.
"""
from typing import List, Optional

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger
import config

# Pages that need a signed-in user
PROTECTED_PAGES: List[str] = ["/dashboard"]

# Pages only useful before signing in
AUTH_PAGES: List[str] = ["/login", "/verify-email", "/reset-password"]

API_PREFIX = "/api"


def _matches(path: str, prefixes: List[str]) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)


class AuthCookieMiddleware(BaseHTTPMiddleware):
    """
    Redirect page requests based on the session cookie:
    protected page without cookie -> login, auth page with cookie -> dashboard.
    """

    def __init__(
        self,
        app,
        cookie_name: Optional[str] = None,
        protected_pages: List[str] = None,
        auth_pages: List[str] = None,
    ):
        """
        Initialize cookie gating middleware.

        Args:
            app: FastAPI application
            cookie_name: Session cookie to look for
            protected_pages: Path prefixes that need the cookie
            auth_pages: Path prefixes that redirect away when the cookie is present
        """
        super().__init__(app)
        self.cookie_name = cookie_name or config.AUTH_COOKIE_NAME
        self.protected_pages = protected_pages or PROTECTED_PAGES
        self.auth_pages = auth_pages or AUTH_PAGES

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path.startswith(API_PREFIX) or request.method == "OPTIONS":
            return await call_next(request)

        has_cookie = bool(request.cookies.get(self.cookie_name))

        if _matches(path, self.protected_pages) and not has_cookie:
            logger.info(f"Redirecting unauthenticated request for {path} to /login")
            return RedirectResponse(url="/login", status_code=307)

        if _matches(path, self.auth_pages) and has_cookie:
            return RedirectResponse(url="/dashboard", status_code=307)

        return await call_next(request)
