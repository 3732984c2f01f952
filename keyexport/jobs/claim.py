"""Claim every unredeemed product in the record store."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys

from keyexport.ingest.humble import client_from_env
from keyexport.jobs.products import configure_logging, run_products
from keyexport.logic.claim import ClaimSummary, claim_products
from keyexport.logic.products import collect_countries, is_redeemable_in
from keyexport.logic.session import RedemptionSession

logger = logging.getLogger(__name__)


async def run_claim(
    *,
    gift: bool = False,
    country: str = "",
    session: RedemptionSession | None = None,
) -> ClaimSummary:
    products = await run_products()
    if country:
        locked = [p for p in products if not is_redeemable_in(p, country)]
        if locked:
            logger.info("Leaving %s region-locked products for %s", len(locked), country)
        products = [p for p in products if is_redeemable_in(p, country)]
    else:
        logger.debug("Region codes in store: %s", ", ".join(collect_countries(products)) or "none")
    client = client_from_env()
    try:
        return await claim_products(products, client, session or RedemptionSession(), gift=gift, on_progress=logger.info)
    finally:
        await client.close()


def _country_arg(args: list[str]) -> str:
    for arg in args:
        if arg.startswith("--country="):
            return arg.split("=", 1)[1].upper()
    return ""


def main() -> None:
    configure_logging()
    args = sys.argv[1:]
    summary = asyncio.run(run_claim(gift="--gift" in args, country=_country_arg(args)))
    for product in summary.products:
        print(json.dumps(dataclasses.asdict(product)))
    print(json.dumps({"redeemed": summary.redeemed, "failed": summary.failed, "skipped": summary.skipped}))


if __name__ == "__main__":
    main()
