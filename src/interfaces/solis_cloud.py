"""
SolisCloud API transport.

`SolisCloudClient` signs and posts requests to the SolisCloud platform and turns every
response into an `ActionResult`. Nothing in here raises for expected failures:
missing credentials, HTTP status codes other than 200, transport exceptions and
responses without the expected `data` all come back as error results.

Endpoints used:
    /v1/api/inverterDetail   station id of the inverter
    /v1/api/inverterList     inverter records (software version)
    /v1/api/inverterDay      one day of 5 minute telemetry
    /v2/api/atRead           read a control setting (cid 4643: charge/discharge settings)
    /v2/api/control          write a control setting
"""

from dataclasses import dataclass
import logging
import requests

from .constants import (
    CID_CHARGE_DISCHARGE_SETTINGS,
    SOLIS_CONTENT_TYPE,
    SOLIS_DEFAULT_ENDPOINT,
)
from .request_signer import RequestSigner, rfc1123_now
from .results import ActionResult

logger = logging.getLogger("__main__")
logger.info("[SOLIS-API] loading module ")


@dataclass
class SolisCloudSettings:
    """
    SolisCloud account and inverter settings.

    `firmware_version` caches the detected control dialect ("pre-4B00"/"post-4B00").
    """

    inverter_sn: str = ""
    key: str = ""
    secret: str = ""
    endpoint: str = SOLIS_DEFAULT_ENDPOINT
    firmware_version: str = ""
    keep_inverter_time_synchronised: bool = False

    @classmethod
    def from_config(cls, config):
        """Build the settings from the `solis_cloud` config section."""
        config = config or {}
        return cls(
            inverter_sn=str(config.get("inverter_sn", "") or ""),
            key=str(config.get("key", "") or ""),
            secret=str(config.get("secret", "") or ""),
            endpoint=config.get("endpoint", "") or SOLIS_DEFAULT_ENDPOINT,
            firmware_version=config.get("firmware_version", "") or "",
            keep_inverter_time_synchronised=bool(
                config.get("keep_inverter_time_synchronised", False)
            ),
        )

    def missing_credentials(self):
        """Names of the required settings that are not set."""
        return [
            name for name in ("inverter_sn", "key", "secret") if not getattr(self, name)
        ]


class SolisCloudClient:
    """
    Signed HTTP client for the SolisCloud API.

    Args:
        settings (SolisCloudSettings): account settings.
        timeout (int): transport timeout in seconds.
        session (requests.Session): optional session, mainly for tests.
    """

    def __init__(self, settings, timeout=30, session=None):
        self.settings = settings
        self.timeout = timeout
        self.session = session or requests.Session()
        self.signer = RequestSigner(settings.key, settings.secret)

    @property
    def is_configured(self):
        """True if inverter serial number, key and secret are all set."""
        missing = self.settings.missing_credentials()
        for name in missing:
            logger.warning("[SOLIS-API] %s not set in SolisCloud configuration", name)
        return not missing

    def request(self, url, body, date, authorization, md5, method="POST"):
        """
        Send one prepared request and decode the JSON response.

        Raises:
            ValueError: if no url is given.
        """
        if not url:
            raise ValueError("solis.request: url not specified")
        full_url = self.settings.endpoint.rstrip("/") + url
        headers = {
            "Content-type": SOLIS_CONTENT_TYPE,
            "Time": date,
            "Authorization": authorization,
            "Content-Md5": md5,
            "Content-Length": str(len(body.encode("utf-8"))),
        }
        logger.debug("[SOLIS-API] request %s %s", method, full_url)
        try:
            response = self.session.request(
                method, full_url, data=body, headers=headers, timeout=self.timeout
            )
            if response.status_code != 200:
                logger.error(
                    "[SOLIS-API] request to %s failed: status %s",
                    url,
                    response.status_code,
                )
                return ActionResult.failure(
                    f"solis.request returned status {response.status_code}",
                    status_code=response.status_code,
                )
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("[SOLIS-API] request to %s failed: %s", url, e)
            return ActionResult.failure("solis.request failed", cause=e)
        logger.debug("[SOLIS-API] request to %s successful", url)
        return ActionResult.success("ok", data=payload)

    def api(self, url, payload, method="POST", date=None):
        """Sign `payload` and post it to `url` (path relative to the endpoint)."""
        if not self.is_configured:
            return ActionResult.failure("SolisCloud credentials are incomplete")
        signed = self.signer.sign(url, payload, method=method, date=date or rfc1123_now())
        return self.request(
            url,
            signed.body,
            signed.date,
            signed.authorization,
            signed.md5,
            method=method,
        )

    def inverter_detail(self):
        """POST /v1/api/inverterDetail"""
        return self.api("/v1/api/inverterDetail", {"sn": self.settings.inverter_sn})

    def inverter_list(self, station_id):
        """POST /v1/api/inverterList"""
        return self.api("/v1/api/inverterList", {"stationId": station_id})

    def inverter_day(self, day):
        """
        POST /v1/api/inverterDay for the calendar day described by `day` (DateInfo
        of local midnight). The payload list is returned in `result.data["data"]`.
        """
        body = {
            "sn": self.settings.inverter_sn,
            "money": "UKP",
            "time": day.iso_date_text,
            "timeZone": 1 if day.daylight_saving else 0,
        }
        resp = self.api("/v1/api/inverterDay", body)
        if resp.is_error:
            return resp
        data = resp.data.get("data") if isinstance(resp.data, dict) else None
        if not isinstance(data, list):
            logger.error("[SOLIS-API] inverterDay API failed: %s", resp.data)
            return ActionResult.failure("solis.inverterDay API failed", response=resp.data)
        return resp

    def at_read(self, cid=CID_CHARGE_DISCHARGE_SETTINGS):
        """
        POST /v2/api/atRead. On success `result.data["data"]["msg"]` holds the
        current setting.
        """
        resp = self.api(
            "/v2/api/atRead", {"inverterSn": self.settings.inverter_sn, "cid": cid}
        )
        if resp.is_error:
            return resp
        data = resp.data.get("data") if isinstance(resp.data, dict) else None
        error = None
        if not data or isinstance(data, str):
            error = "solis.atRead API failed (1)"
        elif not data.get("msg"):
            error = "solis.atRead API failed (2)"
        elif not data.get("yuanzhi"):
            error = "solis.atRead API failed (3)"
        elif str(data["yuanzhi"]).startswith("fail"):
            error = "solis.atRead API failed (4)"
        elif str(data["yuanzhi"]).startswith("error"):
            error = "solis.atRead API failed (5)"
        if error:
            logger.error("[SOLIS-API] %s: %s", error, resp.data)
            return ActionResult.failure(error, response=resp.data)
        return resp

    def control(self, cid, value, description=None):
        """
        POST /v2/api/control. A response without `data` is an error tagged with
        `description` (or the command id).
        """
        resp = self.api(
            "/v2/api/control",
            {"inverterSn": self.settings.inverter_sn, "cid": cid, "value": value},
        )
        if resp.is_error:
            return resp
        if not isinstance(resp.data, dict) or not resp.data.get("data"):
            error = f"{description or f'Solis control {cid}'} API failed"
            logger.error("[SOLIS-API] %s: %s", error, resp.data)
            return ActionResult.failure(error, response=resp.data)
        return resp

    def close(self):
        """Close the HTTP session."""
        if self.session:
            self.session.close()
