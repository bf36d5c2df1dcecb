"""Security middleware: Basic Auth gate for the merchant API, anti-crawl headers, cache control."""
import base64
import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from notifier.config import get_settings

# Paths exempt from Basic Auth: provider callbacks authenticate differently
OPEN_PATHS = ("/health", "/robots.txt", "/webhooks", "/whatsapp")


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        path = request.url.path

        # --- Basic Auth gate (only when dash_user and dash_pass are both set) ---
        if settings.dash_user and settings.dash_pass:
            if not any(path.startswith(p) for p in OPEN_PATHS):
                if not self._check_basic_auth(request, settings):
                    return Response(
                        content="Unauthorized",
                        status_code=401,
                        headers={"WWW-Authenticate": 'Basic realm="WhatsApp Notifier"'},
                    )

        response: Response = await call_next(request)

        response.headers["X-Robots-Tag"] = "noindex, nofollow"

        # Merchant data: browser may store but must revalidate each time
        if "application/json" in response.headers.get("content-type", ""):
            response.headers["Cache-Control"] = "private, no-cache"

        return response

    @staticmethod
    def _check_basic_auth(request: Request, settings) -> bool:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Basic "):
            return False
        try:
            decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
            user, password = decoded.split(":", 1)
        except Exception:
            return False
        user_ok = secrets.compare_digest(user, settings.dash_user)
        pass_ok = secrets.compare_digest(password, settings.dash_pass)
        return user_ok and pass_ok
