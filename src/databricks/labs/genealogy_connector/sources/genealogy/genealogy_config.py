"""Connection-level settings for the genealogy connector.

Settings are resolved once from the connector options (the `dict[str, str]`
handed to every Lakeflow connector) and passed by reference to the historian
client and the engine. Nothing re-reads configuration during a request.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    DEFAULT_INTERFACE,
    DEFAULT_INTERFACE_GROUP,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    GenealogyValidationError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_utils import (
    as_bool,
    as_int,
    parse_ts,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def resolve_base_url(options: Dict[str, str]) -> str:
    """Resolve the PI Web API base URL from the option keys.

    `pi_base_url` / `pi_web_api_url` win; otherwise the URL is assembled from
    the UC HTTP connection keys `host`, `port` and `base_path`.
    """
    base_url = (options.get("pi_base_url") or options.get("pi_web_api_url") or "").rstrip("/")
    if base_url:
        return base_url

    host = (options.get("host") or "").strip()
    if not host:
        return ""
    base_path = (options.get("base_path") or "").strip()
    port = (options.get("port") or "").strip()

    if host.startswith("http://") or host.startswith("https://"):
        scheme_host = host
    else:
        scheme_host = "https://" + host

    if port and ":" not in scheme_host.split("//", 1)[-1]:
        scheme_host = scheme_host.rstrip("/") + f":{port}"

    if base_path:
        if not base_path.startswith("/"):
            base_path = "/" + base_path
        scheme_host = scheme_host.rstrip("/") + base_path.rstrip("/")

    return scheme_host.rstrip("/")


def _limit_from_settings_file(path: str) -> Optional[datetime]:
    """Read `AppSettings.LimitDT` from an appsettings.json file."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise GenealogyValidationError(f"Cannot read settings file {path}: {e}") from e
    raw = (payload.get("AppSettings") or {}).get("LimitDT")
    return parse_ts(raw) if raw else None


@dataclass(frozen=True)
class GenealogySettings:  # pylint: disable=too-many-instance-attributes
    """Read-only configuration shared by every component of a connector instance."""

    base_url: str = ""
    asset_server: str = ""
    asset_database: str = ""
    interface_group: str = DEFAULT_INTERFACE_GROUP
    interface: str = DEFAULT_INTERFACE
    limit_dt: datetime = EPOCH
    verify_ssl: bool = True
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    tag_workers: int = 4
    station_deadline_seconds: Optional[float] = None

    @classmethod
    def from_options(cls, options: Dict[str, str]) -> "GenealogySettings":
        """Build settings from connector options.

        Recognised keys:
            - pi_base_url / pi_web_api_url, or host + port + base_path
            - asset_server, asset_database: AF location of the channels
            - interface_group, interface: default "Simulation"
            - limit_dt: floor timestamp; never search before it
            - settings_path: appsettings.json providing AppSettings.LimitDT
            - verify_ssl (default true)
            - max_workers: station parallelism (default: CPU count)
            - tag_workers: per-station tag parallelism (default 4)
            - station_deadline_seconds (optional)
        """
        limit_dt = EPOCH
        if options.get("limit_dt"):
            try:
                limit_dt = parse_ts(options["limit_dt"])
            except ValueError as e:
                raise GenealogyValidationError(
                    f"Invalid limit_dt option: {options['limit_dt']!r}"
                ) from e
        elif options.get("settings_path"):
            limit_dt = _limit_from_settings_file(options["settings_path"]) or EPOCH

        max_workers = as_int(options.get("max_workers"), default=os.cpu_count() or 1)
        tag_workers = as_int(options.get("tag_workers"), default=4)
        if max_workers < 1 or tag_workers < 1:
            raise GenealogyValidationError("max_workers and tag_workers must be positive")

        deadline = options.get("station_deadline_seconds")
        try:
            station_deadline = float(deadline) if deadline not in (None, "") else None
        except ValueError as e:
            raise GenealogyValidationError(
                f"Invalid station_deadline_seconds option: {deadline!r}"
            ) from e

        settings = cls(
            base_url=resolve_base_url(options),
            asset_server=(options.get("asset_server") or "").strip(),
            asset_database=(options.get("asset_database") or "").strip(),
            interface_group=options.get("interface_group") or DEFAULT_INTERFACE_GROUP,
            interface=options.get("interface") or DEFAULT_INTERFACE,
            limit_dt=limit_dt,
            verify_ssl=as_bool(options.get("verify_ssl"), default=True),
            max_workers=max_workers,
            tag_workers=tag_workers,
            station_deadline_seconds=station_deadline,
        )
        logger.debug(
            "Genealogy settings resolved: base_url=%s interface=%s.%s limit_dt=%s",
            settings.base_url,
            settings.interface_group,
            settings.interface,
            settings.limit_dt,
        )
        return settings
