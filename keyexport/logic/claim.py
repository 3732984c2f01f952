"""Bulk redemption of unclaimed products."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from keyexport.exceptions import RedeemError
from keyexport.ingest.humble import HumbleClient
from keyexport.ingest.models import Product
from keyexport.logic.products import is_keyless
from keyexport.logic.session import RedemptionSession

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClaimSummary:
    products: list[Product]
    redeemed: int = 0
    failed: int = 0
    skipped: int = 0


async def claim_products(
    products: Sequence[Product],
    client: HumbleClient,
    session: RedemptionSession,
    *,
    gift: bool = False,
    on_progress: Callable[[str], None] | None = None,
) -> ClaimSummary:
    """Redeem every unclaimed, non-keyless product in order.

    Products whose earlier failure was permanent are skipped and counted.
    The returned list keeps the input order, with claimed products replaced
    by copies carrying their new key or gift link.
    """
    to_claim = [
        (index, p)
        for index, p in enumerate(products)
        if not p.redeemed_key_val
        and not is_keyless(p.key_type)
        and not session.redemption_failed(p.category_id, p.machine_name)
    ]
    summary = ClaimSummary(products=list(products))
    summary.skipped = sum(
        1 for p in products if not p.redeemed_key_val and session.redemption_failed(p.category_id, p.machine_name)
    )
    for processed, (index, product) in enumerate(to_claim, start=1):
        if on_progress:
            on_progress(f"Claiming {processed}/{len(to_claim)}")
        try:
            value = await client.redeem(product, gift)
        except RedeemError as exc:
            logger.error("Error redeeming %s: %s", product.machine_name, exc.message)
            summary.failed += 1
            if exc.permanent:
                session.mark_redemption_failed(product.category_id, product.machine_name)
            continue
        summary.products[index] = dataclasses.replace(product, redeemed_key_val=value, type="Gift" if gift else "Key")
        summary.redeemed += 1

    logger.info("Claimed %s, failed %s, skipped %s", summary.redeemed, summary.failed, summary.skipped)
    return summary
