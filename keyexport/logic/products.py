"""Normalization of stored orders into products."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import pendulum

from keyexport.ingest.models import Product, RawEntitlement, RawOrder
from keyexport.logic.expiry import resolve_expiry
from keyexport.utils.dates import now_utc, parse_timestamp

CATEGORIES = {
    "storefront": "Store",
    "bundle": "Bundle",
    "subscriptioncontent": "Choice",
}


def get_category(category: str) -> str:
    return CATEGORIES.get(category, "Other")


def get_products(
    orders: Iterable[RawOrder],
    owned_apps: Sequence[int],
    *,
    now: pendulum.DateTime | None = None,
    default_tz: str | None = None,
) -> list[Product]:
    current = now or now_utc()
    owned = set(owned_apps)
    return [
        _to_product(order, entitlement, owned, current, default_tz)
        for order in orders
        for entitlement in order.entitlements
    ]


def _to_product(
    order: RawOrder,
    tpk: RawEntitlement,
    owned: set[int],
    now: pendulum.DateTime,
    default_tz: str | None,
) -> Product:
    expiry = resolve_expiry(tpk.expiry_date, tpk.custom_instructions_html, default_tz=default_tz)
    expires_at = parse_timestamp(expiry)
    is_expired = tpk.is_expired or (expires_at is not None and expires_at < now)

    if tpk.is_gift:
        claim_type = "Gift"
    elif tpk.redeemed_key_val:
        claim_type = "Key"
    else:
        claim_type = "-"

    if tpk.steam_app_id:
        ownership = "Yes" if tpk.steam_app_id in owned else "No"
    else:
        ownership = "-"

    return Product(
        machine_name=tpk.machine_name or "-",
        category=get_category(order.category),
        category_id=order.gamekey,
        category_human_name=order.human_name or "-",
        human_name=tpk.human_name or tpk.machine_name or "-",
        key_type=tpk.key_type or "-",
        type=claim_type,
        redeemed_key_val=tpk.redeemed_key_val,
        is_gift=tpk.is_gift,
        is_expired=is_expired,
        owned=ownership,
        expiry_date=expiry,
        steam_app_id=tpk.steam_app_id,
        created=order.created,
        keyindex=tpk.keyindex,
        exclusive_countries=tuple(tpk.exclusive_countries),
        disallowed_countries=tuple(tpk.disallowed_countries),
    )


def region_lock(product: Product) -> str:
    if product.exclusive_countries:
        return "ONLY:" + ",".join(product.exclusive_countries)
    if product.disallowed_countries:
        return "NOT:" + ",".join(product.disallowed_countries)
    return "NONE"


def is_redeemable_in(product: Product, country: str) -> bool:
    if not country:
        return True
    if product.exclusive_countries:
        return country in product.exclusive_countries
    return country not in product.disallowed_countries


def collect_countries(products: Iterable[Product]) -> list[str]:
    codes: set[str] = set()
    for product in products:
        codes.update(product.exclusive_countries)
        codes.update(product.disallowed_countries)
    return sorted(codes)


def is_keyless(key_type: str) -> bool:
    return key_type.endswith("_keyless")
