import requests

from ..core.settings.config import CONNECTIVITY_TIMEOUT_SECONDS
from .logger import get_logger

logger = get_logger(__name__)


class HttpConnectivityCheck:
    """Answers ``has_active_connection`` with a short HEAD request."""

    def __init__(self, url: str = "https://api.openai.com", timeout: float = CONNECTIVITY_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    def has_active_connection(self) -> bool:
        try:
            requests.head(self.url, timeout=self.timeout, allow_redirects=False)
            return True
        except requests.RequestException as e:
            logger.info(f"No connection to {self.url}: {e}")
            return False


class AlwaysOnline:
    def has_active_connection(self) -> bool:
        return True


class AlwaysOffline:
    def has_active_connection(self) -> bool:
        return False
