# devicegate/models/__init__.py

from devicegate.models.user import User  # noqa: F401
from devicegate.models.user_device import UserDevice  # noqa: F401
from devicegate.models.user_session import UserSession  # noqa: F401
from devicegate.models.auth_event import AuthEvent  # noqa: F401
from devicegate.models.failed_login_attempt import FailedLoginAttempt  # noqa: F401
