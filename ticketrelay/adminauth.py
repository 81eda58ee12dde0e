from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .config import Settings
from .helpers import ct_equal

REALM = "Admin Panel"

# auto_error=False so we can answer with our own realm
basic = HTTPBasic(realm=REALM, auto_error=False)


def _challenge() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="Authentication required",
        headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
    )


def check_credentials(
    settings: Settings, credentials: HTTPBasicCredentials | None
) -> bool:
    # no credentials configured -> admin routes stay closed
    if not settings.admin_enabled or credentials is None:
        return False
    ok_user = ct_equal(credentials.username, settings.ui_user)
    ok_pass = ct_equal(credentials.password, settings.ui_pass)
    return ok_user and ok_pass


def require_admin(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(basic),
) -> str:
    settings: Settings = request.app.state.settings
    if not check_credentials(settings, credentials):
        raise _challenge()
    return credentials.username
