"""requests sessions with bounded retry for outbound gateway calls."""
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

RETRY_STATUSES = (429, 502, 503, 504)
SAFE_METHODS = frozenset({"GET", "PUT", "DELETE", "HEAD", "OPTIONS"})


def build_session(max_retries: int = 3, backoff_factor: float = 0.5, retry_post: bool = False) -> requests.Session:
    """POST is only retried on sessions used with an idempotency key."""
    methods = SAFE_METHODS | {"POST"} if retry_post else SAFE_METHODS
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=methods,
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def upstream_status(provider_status: int) -> int:
    if provider_status in (401, 403):
        return 401
    if provider_status in (400, 402, 404, 409, 410):
        return provider_status
    return 500
