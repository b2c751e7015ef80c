"""Historian access for the genealogy connector.

`HistorianReader` is the abstract collaborator the engine consumes: a ranged
raw read, a point-in-time read and a directional nearest-neighbour read.
Every call takes a deadline; exceeding it yields a `TIMEOUT` status rather
than an exception.

`PiWebApiHistorian` implements it over the PI Web API with `requests`,
handling authentication and channel (AF attribute) WebID resolution.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    EPOCH,
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    MAX_RAW_POINTS,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    HistorianError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    DataPoint,
    Direction,
    ReadResult,
    ReadStatus,
    SignalIdentity,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_utils import (
    as_bool,
    isoformat_z,
    parse_ts,
)

logger = logging.getLogger(__name__)


class HistorianReader(ABC):
    """The three read operations the genealogy engine needs from a historian."""

    @abstractmethod
    def read_raw(
        self, signal: SignalIdentity, start: datetime, end: datetime, timeout: float
    ) -> ReadResult:
        """Return every recorded sample of `signal` inside [start, end]."""

    @abstractmethod
    def read_at_times(
        self, signal: SignalIdentity, timestamps: Sequence[datetime], timeout: float
    ) -> ReadResult:
        """Return the stepped (state) value of `signal` at each instant."""

    @abstractmethod
    def read_directional(  # pylint: disable=too-many-arguments
        self,
        signal: SignalIdentity,
        start: datetime,
        direction: Direction,
        count: int,
        timeout: float,
    ) -> ReadResult:
        """Return up to `count` recorded samples nearest to `start` in `direction`.

        Backward reads return the newest sample first.
        """


class PiWebApiHistorian(HistorianReader):
    """PI Web API implementation of `HistorianReader`.

    Handles:
    - Bearer token or basic authentication (or explicit anonymous access)
    - One re-authentication retry on 401
    - AF attribute path -> WebID resolution, memoised per client
    - Mapping of timeouts and HTTP errors onto `ReadStatus`
    """

    def __init__(self, settings: GenealogySettings, options: Dict[str, str]) -> None:
        if not settings.base_url:
            raise ValueError(
                "Genealogy connector requires 'pi_base_url' (or 'host') in options"
            )
        self.settings = settings
        self.options = options
        self.base_url = settings.base_url

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.verify_ssl = settings.verify_ssl

        self._auth_lock = threading.Lock()
        self._auth_resolved = False
        self._webids: Dict[SignalIdentity, str] = {}
        self._webid_lock = threading.Lock()

    # =========================================================================
    # Authentication and transport
    # =========================================================================

    def ensure_auth(self) -> None:
        """Configure session authentication from the connector options."""
        with self._auth_lock:
            if self._auth_resolved:
                return

            access_token = (
                self.options.get("access_token")
                or self.options.get("bearer_token")
                or self.options.get("bearer_value")
            )
            username = self.options.get("username")
            password = self.options.get("password")

            if as_bool(self.options.get("allow_anonymous"), default=False):
                logger.warning("PI Web API: allow_anonymous=true, no Authorization header sent")
                self.session.headers.pop("Authorization", None)
                self.session.auth = None
            elif access_token:
                self.session.headers.update({"Authorization": f"Bearer {access_token}"})
            elif username and password:
                self.session.auth = (username, password)
            else:
                raise RuntimeError(
                    "No valid authentication credentials found in options. "
                    "Expected one of: access_token, OR (username + password), "
                    "OR allow_anonymous=true."
                )
            self._auth_resolved = True

    def _reset_auth(self) -> None:
        with self._auth_lock:
            self._auth_resolved = False
            self.session.headers.pop("Authorization", None)
            self.session.auth = None

    def get_json(self, path: str, params: Optional[Any], timeout: float) -> dict:
        """GET `path` and return the decoded JSON body.

        Raises:
            requests.Timeout: the deadline expired.
            requests.HTTPError: the server answered with an error status.
            HistorianError: the request could not be completed.
        """
        url = f"{self.base_url}{path}"
        for attempt in range(2):
            self.ensure_auth()
            try:
                r = self.session.get(url, params=params, timeout=timeout, verify=self.verify_ssl)
            except requests.Timeout:
                raise
            except requests.RequestException as e:
                raise HistorianError(f"PI Web API request to {path} failed: {e}") from e

            if r.status_code == 401 and attempt == 0:
                logger.debug("PI Web API returned 401, retrying authentication")
                self._reset_auth()
                continue

            try:
                r.raise_for_status()
            except requests.HTTPError as e:
                body = (getattr(r, "text", None) or "")[:2000]
                raise requests.HTTPError(
                    f"{e}. Response body (truncated): {body}", response=r
                ) from e
            return r.json()

        raise RuntimeError("Authentication failed after retry")

    def _read(self, signal: SignalIdentity, path_suffix: str, params, timeout: float) -> ReadResult:
        """Run one stream read, mapping transport outcomes onto `ReadResult`."""
        try:
            webid = self.resolve_webid(signal, timeout)
            data = self.get_json(f"/piwebapi/streams/{webid}/{path_suffix}", params, timeout)
        except requests.Timeout:
            logger.warning("PI Web API %s read timed out after %ss for %s", path_suffix, timeout, signal)
            return ReadResult(ReadStatus.TIMEOUT, error=f"Timeout after {timeout}s")
        except requests.HTTPError as e:
            status_code = getattr(e.response, "status_code", None) or 0
            if status_code >= 500:
                raise HistorianError(str(e), channel=str(signal)) from e
            return ReadResult(ReadStatus.ERROR, error=str(e))
        return ReadResult.of(_points_from_items(data.get("Items") or []))

    # =========================================================================
    # Channel resolution
    # =========================================================================

    def resolve_webid(self, signal: SignalIdentity, timeout: float) -> str:
        """Resolve the WebID of the AF attribute backing `signal`."""
        with self._webid_lock:
            cached = self._webids.get(signal)
        if cached:
            return cached

        path = signal.attribute_path(self.settings.asset_server, self.settings.asset_database)
        data = self.get_json(
            "/piwebapi/attributes", {"path": path, "selectedFields": "WebId"}, timeout
        )
        webid = data.get("WebId")
        if not webid:
            raise HistorianError("PI Web API did not return a WebId", channel=path)
        with self._webid_lock:
            self._webids[signal] = webid
        return webid

    # =========================================================================
    # HistorianReader
    # =========================================================================

    def read_raw(
        self, signal: SignalIdentity, start: datetime, end: datetime, timeout: float
    ) -> ReadResult:
        params = {
            "startTime": isoformat_z(start),
            "endTime": isoformat_z(end),
            "boundaryType": "Inside",
            "maxCount": str(MAX_RAW_POINTS),
        }
        return self._read(signal, "recorded", params, timeout)

    def read_at_times(
        self, signal: SignalIdentity, timestamps: Sequence[datetime], timeout: float
    ) -> ReadResult:
        params: List[Tuple[str, str]] = [("time", isoformat_z(t)) for t in timestamps]
        return self._read(signal, "interpolatedattimes", params, timeout)

    def read_directional(  # pylint: disable=too-many-arguments
        self,
        signal: SignalIdentity,
        start: datetime,
        direction: Direction,
        count: int,
        timeout: float,
    ) -> ReadResult:
        # PI returns samples newest-first when startTime is later than endTime
        end_time = "*" if direction == Direction.FORWARD else isoformat_z(EPOCH)
        params = {
            "startTime": isoformat_z(start),
            "endTime": end_time,
            "boundaryType": "Inside",
            "maxCount": str(count),
        }
        return self._read(signal, "recorded", params, timeout)


def _points_from_items(items: List[dict]) -> List[DataPoint]:
    """Convert PI stream items to data points, skipping bad-quality samples."""
    points: List[DataPoint] = []
    for item in items:
        ts = item.get("Timestamp")
        if not ts or not as_bool(item.get("Good"), default=True):
            continue
        points.append(DataPoint(timestamp=parse_ts(ts), value=item.get("Value")))
    return points
