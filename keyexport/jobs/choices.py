"""Claim every subscription choice bundle found in the record store."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging

from dotenv import load_dotenv

from keyexport.ingest.humble import client_from_env
from keyexport.ingest.models import RedeemedChoiceKey
from keyexport.jobs.products import configure_logging, storage_path
from keyexport.logic.choices import process_all_choices
from keyexport.logic.session import RedemptionSession
from keyexport.store.kv import JsonFileStore

logger = logging.getLogger(__name__)


async def run_choices(session: RedemptionSession | None = None) -> list[RedeemedChoiceKey]:
    load_dotenv()
    store = JsonFileStore(storage_path())
    client = client_from_env()
    try:
        results = await process_all_choices(store, client, session or RedemptionSession())
    finally:
        await client.close()
    failed = sum(1 for result in results if result.error)
    logger.info("Choice claim finished: %s keys, %s failed", len(results) - failed, failed)
    return results


def main() -> None:
    configure_logging()
    for result in asyncio.run(run_choices()):
        print(json.dumps(dataclasses.asdict(result)))


if __name__ == "__main__":
    main()
