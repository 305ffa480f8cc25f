import hmac
from typing import Optional

from config.platform import AppConfig
from errors import AuthorizationDenied


class CredentialGate:
    """Checks the frontend's shared app password."""

    def __init__(self, config: AppConfig):
        self._secret = config.app_password

    def verify(self, provided_secret: Optional[str]) -> bool:
        if not provided_secret or not self._secret:
            return False
        return hmac.compare_digest(provided_secret.encode("utf-8"), self._secret.encode("utf-8"))

    def require(self, provided_secret: Optional[str]) -> None:
        if not self.verify(provided_secret):
            raise AuthorizationDenied()
