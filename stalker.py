import json
import logging
import re
from collections import OrderedDict
from typing import Dict, Mapping, Optional
from urllib.parse import quote, urlencode

import pytz
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------
# CUSTOM EXCEPTIONS
# -------------------------------------------------------------------------
class StalkerPortalError(Exception):
    """Base exception for StalkerPortal errors."""
    pass

class ValidationError(StalkerPortalError):
    """Raised when required conversion input is missing."""
    pass

class TransportError(StalkerPortalError):
    """Raised when the portal cannot be reached at all."""
    pass

class ProtocolError(StalkerPortalError):
    """Raised on a non-2xx status or a malformed response envelope."""

    def __init__(self, message: str, step: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.step = step
        self.status_code = status_code

# -------------------------------------------------------------------------
# DEVICE EMULATION CONSTANTS
# -------------------------------------------------------------------------
USER_AGENT = (
    "Mozilla/5.0 (QtEmbedded; U; Linux; C) AppleWebKit/533.3 (KHTML, like Gecko) "
    "MAG200 stbapp ver: 2 rev: 250 Safari/533.3"
)
X_USER_AGENT = "Model: MAG250; Link: WiFi"
PORTAL_PATH = "portal.php"

# Characters encodeURIComponent leaves untouched besides the unreserved set
URI_COMPONENT_SAFE = "!*'()"

MAC_SEPARATORS_REGEX = re.compile(r"[\s:.\-]")
MAC_HEX_REGEX = re.compile(r"^[0-9A-F]{12}$")


def normalize_mac(mac: str) -> str:
    """
    Render a free-form MAC address as six colon-separated uppercase hex pairs.

    Separators (colons, dashes, dots, whitespace) are stripped before
    regrouping. Input that does not reduce to exactly 12 hex digits is
    returned unchanged.

    Parameters:
        mac (str): MAC address as typed by the user.

    Returns:
        str: Canonical MAC address, or the original input.
    """
    compact = MAC_SEPARATORS_REGEX.sub("", mac).upper()
    if not MAC_HEX_REGEX.match(compact):
        logger.debug(f"MAC {mac!r} is not 12 hex digits, passing through unchanged.")
        return mac
    return ":".join(compact[i:i + 2] for i in range(0, 12, 2))


def build_session(max_retries: int, backoff_factor: float) -> requests.Session:
    """
    HTTP session with gzip and optional retry/backoff.
    """
    s = requests.Session()
    s.headers.update({
        "Accept": "*/*",
        "Accept-Encoding": "gzip, deflate",
    })

    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    return s

# -------------------------------------------------------------------------
# STALKERPORTAL CLASS
# -------------------------------------------------------------------------
class StalkerPortal:
    def __init__(
        self,
        portal_url: str,
        mac: str,
        timezone: str = "Europe/London",
        timeout: float = 30,
        retries: int = 0,
        backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the StalkerPortal instance.

        Parameters:
            portal_url (str): Base URL of the portal, without the portal.php path.
            mac (str): MAC address of the emulated device, already normalized.
            timezone (str): Timezone sent in the device cookie.
            timeout (float): Timeout for HTTP requests in seconds.
            retries (int): Transport-level retries for idempotent GETs.
            backoff_factor (float): Backoff factor between retries.
            session (Optional[requests.Session]): Session to use instead of a fresh one.
        """
        self.portal_url = portal_url.rstrip("/")
        self.mac = mac.strip()

        if timezone not in pytz.all_timezones:
            raise ValueError(f"Invalid timezone provided: {timezone}")
        self.timezone = pytz.timezone(timezone)

        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("timeout must be a positive number.")
        self.timeout = timeout

        if not isinstance(retries, int) or retries < 0:
            raise ValueError("retries must be a non-negative integer.")
        self.retries = retries

        if not isinstance(backoff_factor, (int, float)) or backoff_factor < 0:
            raise ValueError("backoff_factor must be a non-negative number.")
        self.backoff_factor = backoff_factor

        self.session = session or build_session(retries, backoff_factor)
        self.token: Optional[str] = None

    def __enter__(self):
        """Enable use as a context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ensure the session is closed when exiting the context."""
        self.session.close()
        logger.debug("HTTP session closed.")

    # -------------------------------------------------------------------------
    # HEADERS & COOKIES
    # -------------------------------------------------------------------------

    def generate_headers(self) -> OrderedDict:
        """
        Generate the emulated set-top-box headers.

        The bearer token is included once the handshake has issued one.

        Returns:
            OrderedDict: Generated headers.
        """
        headers = OrderedDict()
        headers["User-Agent"] = USER_AGENT
        headers["X-User-Agent"] = X_USER_AGENT
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        headers["Cookie"] = self.generate_cookies()
        return headers

    def generate_cookies(self) -> str:
        """
        Generate cookie string carrying the device identity.

        Returns:
            str: Generated cookie string.
        """
        cookies = {
            "mac": quote(self.mac, safe=""),
            "stb_lang": "en",
            "timezone": self.timezone.zone,
        }
        return "; ".join([f"{key}={value}" for key, value in cookies.items()])

    # -------------------------------------------------------------------------
    # HTTP & JSON HELPERS
    # -------------------------------------------------------------------------

    def build_url(self, params: Mapping[str, object]) -> str:
        """
        Build the portal.php URL with the query parameters in the given order.

        Parameters:
            params (Mapping[str, object]): Query parameters.

        Returns:
            str: Absolute request URL.
        """
        query = urlencode(
            [(key, str(value)) for key, value in params.items()],
            safe=URI_COMPONENT_SAFE,
            quote_via=quote,
        )
        return f"{self.portal_url}/{PORTAL_PATH}?{query}"

    def get(self, params: Mapping[str, object], step: str = "request") -> Dict:
        """
        Perform one GET against portal.php and decode the JSON envelope.

        Parameters:
            params (Mapping[str, object]): Query parameters, sent in order.
            step (str): Human-readable name of the pipeline step, used in errors.

        Returns:
            Dict: Decoded JSON object.

        Raises:
            TransportError: The portal could not be reached.
            ProtocolError: Non-2xx status or a body that is not a JSON object.
        """
        url = self.build_url(params)
        logger.debug(f"{step} - GET {url}")
        try:
            response = self.session.get(url, headers=self.generate_headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"{step} request failed: {e}")
            raise TransportError(f"{step} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"{step} returned HTTP {response.status_code}")
            raise ProtocolError(
                f"{step} failed: HTTP {response.status_code}",
                step=step,
                status_code=response.status_code,
            )

        try:
            json_response = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug(f"{step} response text: {response.text[:500]}")
            raise ProtocolError(f"{step} returned malformed JSON", step=step) from e
        if not isinstance(json_response, dict):
            raise ProtocolError(f"{step} returned malformed JSON", step=step)
        return json_response

    # -------------------------------------------------------------------------
    # AUTH
    # -------------------------------------------------------------------------

    def handshake(self) -> str:
        """
        Obtain a session token from the portal.

        Returns:
            str: The issued token, also kept on the instance.
        """
        params = OrderedDict([
            ("type", "stb"),
            ("action", "handshake"),
            ("token", ""),
            ("JsHttpRequest", "1-xml"),
        ])
        self.token = None
        json_response = self.get(params, step="handshake")

        js_data = json_response.get("js")
        token = js_data.get("token") if isinstance(js_data, dict) else None
        if not token:
            logger.error("Token not found in handshake response.")
            raise ProtocolError("missing token", step="handshake")

        self.token = str(token)
        logger.info(f"Handshake with {self.portal_url} successful.")
        logger.debug(f"Token: {self.token}")
        return self.token
