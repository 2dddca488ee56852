# modules/broker/ig_client.py
import time
from typing import Callable, List, Optional

import requests

from models.errors import BrokerTransportError
from modules.broker.base import BaseBroker
from utils.logger import setup_logger

logger = setup_logger(__name__)

DEAL_NOT_FOUND = "error.confirms.deal-not-found"


class IGClient(BaseBroker):
    """Synchronous client for the IG REST trading API (v1-v3 endpoints)."""

    LIVE_URL = "https://api.ig.com/gateway/deal"
    DEMO_URL = "https://demo-api.ig.com/gateway/deal"

    def __init__(
        self,
        api_key: str,
        username: str,
        password: str,
        account_id: Optional[str] = None,
        demo: bool = True,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        confirm_attempts: int = 3,
        confirm_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.username = username
        self.password = password
        self.account_id = account_id
        self.base_url = base_url or (self.DEMO_URL if demo else self.LIVE_URL)
        self.session = session or requests.Session()
        self.confirm_attempts = confirm_attempts
        self.confirm_delay = confirm_delay
        self._sleep = sleep
        self.cst: Optional[str] = None
        self.security_token: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _headers(self, version: str, extra: Optional[dict] = None) -> dict:
        headers = {
            "X-IG-API-KEY": self.api_key,
            "Content-Type": "application/json; charset=UTF-8",
            "Accept": "application/json; charset=UTF-8",
            "Version": version,
        }
        if self.cst:
            headers["CST"] = self.cst
        if self.security_token:
            headers["X-SECURITY-TOKEN"] = self.security_token
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        version: str = "1",
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        retry_auth: bool = True,
    ) -> requests.Response:
        url = self.base_url + endpoint
        try:
            resp = self.session.request(
                method, url, headers=self._headers(version, headers), json=json, params=params
            )
        except requests.RequestException as exc:
            raise BrokerTransportError(f"{method} {endpoint} failed: {exc}") from exc

        logger.debug("IG %s %s %s -> %s", method, endpoint, json or params or "", resp.status_code)
        if resp.status_code == 401 and retry_auth and endpoint != "/session":
            logger.info("🔑 IG session expired, re-authenticating")
            self.authenticate()
            return self._request(
                method, endpoint, version=version, json=json, params=params,
                headers=headers, retry_auth=False,
            )
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #
    def authenticate(self) -> None:
        resp = self._request(
            "POST", "/session", version="2",
            json={"identifier": self.username, "password": self.password},
        )
        if resp.status_code != 200:
            raise BrokerTransportError(
                f"IG login failed ({resp.status_code}): {self._json(resp).get('errorCode')}"
            )
        self.cst = resp.headers.get("CST")
        self.security_token = resp.headers.get("X-SECURITY-TOKEN")
        current = self._json(resp).get("currentAccountId")
        if self.account_id and current and current != self.account_id:
            self._request(
                "PUT", "/session", json={"accountId": self.account_id, "defaultAccount": False}
            )
        logger.info("✅ IG session established (%s)", self.base_url)

    # ------------------------------------------------------------------ #
    # Market data
    # ------------------------------------------------------------------ #
    def quote(self, venue_id: str) -> Optional[dict]:
        resp = self._request("GET", f"/markets/{venue_id}", version="3")
        data = self._json(resp)
        if resp.status_code != 200 or "instrument" not in data:
            logger.debug("IG quote %s unavailable: %s", venue_id, data.get("errorCode"))
            return None
        return data

    def search(self, term: str) -> List[dict]:
        resp = self._request("GET", "/markets", params={"searchTerm": term})
        return self._json(resp).get("markets", []) or []

    def open_positions(self) -> List[dict]:
        resp = self._request("GET", "/positions", version="2")
        return self._json(resp).get("positions", []) or []

    # ------------------------------------------------------------------ #
    # Dealing
    # ------------------------------------------------------------------ #
    def place_order(
        self,
        venue_id: str,
        direction: str,
        size: float,
        *,
        expiry: str = "-",
        currency_code: Optional[str] = None,
        order_type: str = "MARKET",
        level: Optional[float] = None,
    ) -> dict:
        payload = {
            "epic": venue_id,
            "expiry": expiry or "-",
            "direction": direction.upper(),
            "size": size,
            "orderType": order_type,
            "guaranteedStop": False,
            "forceOpen": True,
        }
        if order_type == "LIMIT":
            payload["level"] = level
            payload["timeInForce"] = "EXECUTE_AND_ELIMINATE"
        else:
            payload["timeInForce"] = "FILL_OR_KILL"
        if currency_code:
            payload["currencyCode"] = currency_code

        resp = self._request("POST", "/positions/otc", version="2", json=payload)
        data = self._json(resp)
        if "dealReference" in data:
            logger.info("📤 Order sent %s %s %s -> %s", direction, size, venue_id, data["dealReference"])
        else:
            logger.warning("❌ Order for %s refused: %s", venue_id, data.get("errorCode"))
        return data

    def confirm(self, deal_reference: str) -> dict:
        """Poll /confirms until the venue knows the deal (bounded retries)."""
        data: dict = {}
        for attempt in range(1, self.confirm_attempts + 1):
            resp = self._request("GET", f"/confirms/{deal_reference}")
            data = self._json(resp)
            if data.get("errorCode") != DEAL_NOT_FOUND:
                return data
            logger.debug("⏳ Confirm %s not ready (%d/%d)", deal_reference, attempt, self.confirm_attempts)
            if attempt < self.confirm_attempts:
                self._sleep(self.confirm_delay)
        return {
            "dealReference": deal_reference,
            "dealStatus": "UNKNOWN",
            "reason": data.get("errorCode") or "confirmation unavailable",
        }

    def close_order(
        self,
        deal_id: str,
        direction: str,
        size: float,
        *,
        venue_id: Optional[str] = None,
        expiry: str = "-",
    ) -> dict:
        opposite = "SELL" if direction.upper() == "BUY" else "BUY"
        payload = {
            "dealId": deal_id,
            "direction": opposite,
            "size": size,
            "orderType": "MARKET",
            "timeInForce": "FILL_OR_KILL",
        }
        resp = self._request(
            "POST", "/positions/otc", json=payload, headers={"_method": "DELETE"}
        )
        data = self._json(resp)
        if "dealReference" in data or venue_id is None:
            return data

        logger.warning("⚠️ Close of %s refused (%s), netting instead", deal_id, data.get("errorCode"))
        netting = {
            "epic": venue_id,
            "expiry": expiry or "-",
            "direction": opposite,
            "size": size,
            "orderType": "MARKET",
            "timeInForce": "FILL_OR_KILL",
            "guaranteedStop": False,
            "forceOpen": False,
        }
        resp = self._request("POST", "/positions/otc", version="2", json=netting)
        return self._json(resp)

    def update_levels(
        self,
        deal_id: str,
        stop_level: Optional[float] = None,
        limit_level: Optional[float] = None,
    ) -> dict:
        payload = {
            "stopLevel": stop_level,
            "limitLevel": limit_level,
            "guaranteedStop": False,
            "trailingStop": False,
        }
        resp = self._request("PUT", f"/positions/otc/{deal_id}", version="2", json=payload)
        data = self._json(resp)
        if resp.status_code != 200:
            data.setdefault("errorCode", f"http-{resp.status_code}")
        return data
