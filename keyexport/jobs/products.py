"""Build the product table from the exported record store."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import pathlib
import sys

from dotenv import load_dotenv

from keyexport.ingest.models import Product
from keyexport.ingest.steam import OwnedAppsCache, steam_client_from_env
from keyexport.logic.products import get_products, region_lock
from keyexport.store.kv import JsonFileStore
from keyexport.store.records import load_orders

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = ".cache/storage.json"


def storage_path() -> pathlib.Path:
    return pathlib.Path(os.environ.get("STORAGE_PATH", DEFAULT_STORAGE_PATH))


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run_products(*, refresh: bool = False) -> list[Product]:
    load_dotenv()
    store = JsonFileStore(storage_path())
    orders = load_orders(store)
    steam = steam_client_from_env()
    try:
        owned = await OwnedAppsCache(store, steam).load(force_refresh=refresh)
    finally:
        await steam.close()
    logger.info("Loaded %s orders, %s owned apps", len(orders), len(owned))
    return get_products(orders, owned)


def main() -> None:
    configure_logging()
    products = asyncio.run(run_products(refresh="--refresh" in sys.argv[1:]))
    for product in products:
        print(json.dumps({**dataclasses.asdict(product), "region_lock": region_lock(product)}))


if __name__ == "__main__":
    main()
