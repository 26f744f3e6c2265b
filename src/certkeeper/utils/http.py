import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from typing import Optional, Dict

from ..logging import get_logger
from ..errors import AuthorityUnavailableError
from .. import __version__

logger = get_logger(__name__)

# Connection pool configuration
DEFAULT_POOL_CONNECTIONS = 4
DEFAULT_POOL_MAXSIZE = 4
DEFAULT_TIMEOUT = 15

# POST (issue, revoke, login) is only retried on connection errors, never after
# the server may have acted on it
IDEMPOTENT_METHODS = frozenset(["HEAD", "GET", "OPTIONS", "PUT", "DELETE"])


class StandardClient:
    """
    Standard HTTP client for collaborator APIs.
    Enforces timeouts, retries with exponential backoff, and standard headers.

    Transport failures that survive the retry budget surface as
    AuthorityUnavailableError; HTTP error statuses are returned to the
    caller for classification.
    """
    def __init__(
        self,
        base_url: str,
        verify: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        total_retries: int = 3,
        backoff_factor: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.verify = verify

        # Transient statuses and connection errors are retried with backoff
        retries = Retry(
            total=total_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=IDEMPOTENT_METHODS,
        )

        adapter = HTTPAdapter(
            max_retries=retries,
            pool_connections=DEFAULT_POOL_CONNECTIONS,
            pool_maxsize=DEFAULT_POOL_MAXSIZE,
        )
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        self.session.headers.update({
            "User-Agent": f"certkeeper/{__version__}",
            "Accept": "application/json",
        })
        if headers:
            self.session.headers.update(headers)

    def set_header(self, name: str, value: str) -> None:
        self.session.headers[name] = value

    def request(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> requests.Response:
        """Performs a request; raises AuthorityUnavailableError on transport failure."""
        url = f"{self.base_url}/{path.lstrip('/')}"

        try:
            return self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error talking to {self.base_url}: {type(e).__name__}")
            raise AuthorityUnavailableError(f"{method} {path}: {type(e).__name__}") from e

    def close(self) -> None:
        self.session.close()
