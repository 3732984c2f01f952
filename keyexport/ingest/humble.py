"""Storefront client: choice pages, content selection and key redemption."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from keyexport.exceptions import FetchError, ParseError, RedeemError, SelectionError
from keyexport.ingest.models import ChoicePageData
from keyexport.utils.html import extract_script_json
from keyexport.utils.throttle import HostThrottle

logger = logging.getLogger(__name__)

HUMBLE_HOST = os.environ.get("HUMBLE_HOST", "www.humblebundle.com")
CHOICE_DATA_ELEMENT_ID = "webpack-monthly-product-data"
CSRF_COOKIE = "csrf_cookie"
SESSION_COOKIE = "_simpleauth_sess"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"


class Redeemable(Protocol):
    machine_name: str
    category_id: str
    keyindex: int | None


class HumbleClient:
    def __init__(
        self,
        *,
        host: str = HUMBLE_HOST,
        session: httpx.AsyncClient | None = None,
        throttle: HostThrottle | None = None,
        csrf_token: Callable[[], str] | None = None,
    ) -> None:
        self.host = host
        self._session = session or httpx.AsyncClient(timeout=30.0)
        self._throttle = throttle or HostThrottle()
        self._csrf_token = csrf_token or self._csrf_from_cookies

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    async def close(self) -> None:
        await self._session.aclose()

    def _csrf_from_cookies(self) -> str:
        return self._session.cookies.get(CSRF_COOKIE) or ""

    async def fetch_choice_page(self, choice_url: str) -> ChoicePageData:
        url = f"{self.base_url}/membership/{choice_url}"
        logger.info("Fetching choice page %s", url)
        response = await self._session.get(url)
        if not response.is_success:
            raise FetchError(url, response.status_code)
        data = extract_script_json(response.text, CHOICE_DATA_ELEMENT_ID)
        try:
            return ChoicePageData.model_validate(data)
        except ValidationError as exc:
            raise ParseError(f"Unexpected choice data in page: {exc.error_count()} errors") from exc

    async def choose_content(self, gamekey: str, parent_identifier: str, identifiers: Sequence[str]) -> None:
        form = {
            "gamekey": gamekey,
            "parent_identifier": parent_identifier,
            "chosen_identifiers[]": list(identifiers),
        }
        headers = {"Content-Type": FORM_CONTENT_TYPE, "csrf-prevention-token": self._csrf_token()}
        logger.info("Choosing content for %s: %s", gamekey, ", ".join(identifiers))
        response = await self._post("/humbler/choosecontent", form, headers)
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise SelectionError(f"Unreadable choosecontent response ({response.status_code})") from exc
        logger.debug("Choose content response: %s", data)
        if not isinstance(data, dict):
            raise SelectionError("Failed to choose content")
        errors = data.get("errors")
        already_chosen = isinstance(errors, dict) and bool(errors.get("dummy"))
        if data.get("success") is not True and not already_chosen:
            message = data.get("error_msg") or (json.dumps(errors) if errors else "Failed to choose content")
            raise SelectionError(message)

    async def redeem(self, item: Redeemable, gift: bool = False) -> str:
        form = {
            "keytype": item.machine_name,
            "key": item.category_id,
            "keyindex": str(item.keyindex if item.keyindex is not None else 0),
        }
        if gift:
            form["gift"] = "true"
        logger.info("Redeeming %s", item.machine_name)
        try:
            response = await self._post("/humbler/redeemkey", form, {"Content-Type": FORM_CONTENT_TYPE})
        except httpx.HTTPError as exc:
            raise RedeemError(f"Request failed: {exc}") from exc
        if not response.is_success:
            raise RedeemError(f"Redeem request failed: {response.status_code}")
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise RedeemError("Unreadable redeem response") from exc
        logger.debug("Redeem response: %s", data)
        return self._redeemed_value(data, gift)

    def _redeemed_value(self, data: Any, gift: bool) -> str:
        if not isinstance(data, dict):
            raise RedeemError("Unexpected redeem response", permanent=True)
        if data.get("success") is False:
            message = data.get("error_msg") or data.get("errors") or "Redemption rejected"
            raise RedeemError(str(message), permanent=True)
        if gift:
            giftkey = data.get("giftkey")
            if not giftkey:
                raise RedeemError("No gift link returned", permanent=True)
            return f"{self.base_url}/gift?key={giftkey}"
        key = data.get("key")
        if not key:
            raise RedeemError("No key returned", permanent=True)
        return str(key)

    async def _post(self, path: str, form: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        async with self._throttle.slot(self.host):
            return await self._session.post(f"{self.base_url}{path}", data=form, headers=headers)


def client_from_env() -> HumbleClient:
    cookies = httpx.Cookies()
    session_cookie = os.environ.get("HUMBLE_SESSION_COOKIE")
    csrf_cookie = os.environ.get("HUMBLE_CSRF_COOKIE")
    if session_cookie:
        cookies.set(SESSION_COOKIE, session_cookie, domain=HUMBLE_HOST)
    if csrf_cookie:
        cookies.set(CSRF_COOKIE, csrf_cookie, domain=HUMBLE_HOST)
    session = httpx.AsyncClient(timeout=30.0, cookies=cookies, headers={"User-Agent": "keyexport/1.0"})
    return HumbleClient(session=session)
