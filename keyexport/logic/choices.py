"""Claiming the titles of subscription choice bundles.

For each choice order the page data is fetched, the titles that still need
choosing are submitted in one selection call, and every claimable key is
then redeemed one at a time. A title whose redemption fails is remembered
in the session and left out of later runs for the same gamekey.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from keyexport.exceptions import KeyExportError, RedeemError
from keyexport.ingest.humble import HumbleClient
from keyexport.ingest.models import (
    ChoiceGameData,
    ChoiceOrder,
    ChoicePageData,
    ChoiceTpkd,
    RawOrder,
    RedeemedChoiceKey,
    RedeemTarget,
)
from keyexport.logic.session import RedemptionSession
from keyexport.store.kv import KeyValueStore
from keyexport.store.records import iter_records
from keyexport.utils.retry import retry_async

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

SUBSCRIPTION_CATEGORY = "subscriptioncontent"


def find_choice_orders(store: KeyValueStore) -> list[ChoiceOrder]:
    orders = []
    for key, data in iter_records(store):
        order = RawOrder.from_dict(data, key)
        if order.category == SUBSCRIPTION_CATEGORY and order.choice_url:
            orders.append(ChoiceOrder(gamekey=order.gamekey, choice_url=order.choice_url, human_name=order.human_name))
    return orders


def _needs_choosing(tpkd: ChoiceTpkd) -> bool:
    return (
        bool(tpkd.machine_name)
        and not tpkd.is_keyless
        and not tpkd.redeemed_key_val
        and not tpkd.is_expired
        and not tpkd.sold_out
    )


def _noop(message: str) -> None:
    pass


class ChoiceProcessor:
    def __init__(
        self,
        client: HumbleClient,
        session: RedemptionSession | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.client = client
        self.session = session or RedemptionSession()
        self.on_progress = on_progress or _noop

    def _progress(self, message: str) -> None:
        logger.info(message)
        self.on_progress(message)

    async def process(self, order: ChoiceOrder) -> list[RedeemedChoiceKey]:
        self._progress(f"Fetching: {order.human_name}")
        page = await retry_async(self.client.fetch_choice_page)(order.choice_url)

        if not page.product_is_choiceless:
            self._progress(f"Skipping {order.human_name} (old-style choice)")
            return []
        options = page.content_choice_options
        if not options.can_redeem_games:
            self._progress(f"Skipping {order.human_name} (cannot redeem)")
            return []

        gamekey = options.gamekey or order.gamekey
        candidates = self.candidate_ids(page, gamekey)
        to_choose = self.unchosen_ids(page, gamekey, candidates)
        if to_choose:
            self._progress(f"Choosing {len(to_choose)} games for {order.human_name}")
            await self.client.choose_content(gamekey, page.parent_identifier, to_choose)
            self.session.mark_selected(gamekey, to_choose)

        results: list[RedeemedChoiceKey] = []
        game_data = options.content_choice_data.game_data
        for item_id in candidates:
            results.extend(await self._redeem_game(gamekey, item_id, game_data[item_id], options.title))
        return results

    def candidate_ids(self, page: ChoicePageData, gamekey: str) -> list[str]:
        data = page.content_choice_options.content_choice_data
        return [
            item_id
            for item_id in data.display_order
            if item_id in data.game_data
            and data.game_data[item_id].tpkds
            and not self.session.choice_failed(gamekey, item_id)
        ]

    def unchosen_ids(self, page: ChoicePageData, gamekey: str, candidates: list[str]) -> list[str]:
        options = page.content_choice_options
        already_chosen = options.already_chosen()
        game_data = options.content_choice_data.game_data
        return [
            item_id
            for item_id in candidates
            if item_id not in already_chosen
            and not self.session.was_selected(gamekey, item_id)
            and any(_needs_choosing(tpkd) for tpkd in game_data[item_id].tpkds)
        ]

    async def _redeem_game(
        self, gamekey: str, item_id: str, game: ChoiceGameData, choice_title: str
    ) -> list[RedeemedChoiceKey]:
        results: list[RedeemedChoiceKey] = []
        for tpkd in game.tpkds:
            record = RedeemedChoiceKey(
                game_name=game.title,
                machine_name=tpkd.machine_name,
                key_type=tpkd.key_type,
                key="",
                choice_title=choice_title,
            )
            if tpkd.redeemed_key_val:
                record.key = tpkd.redeemed_key_val
                results.append(record)
                continue
            if tpkd.is_keyless:
                continue
            if tpkd.is_expired or tpkd.sold_out:
                record.error = "Expired" if tpkd.is_expired else "Sold out"
                self._progress(f"{game.title}: {record.error}")
                results.append(record)
                continue

            if not tpkd.machine_name:
                record.error = "Missing machine name"
                results.append(record)
                continue

            self._progress(f"Redeeming: {game.title}")
            try:
                record.key = await self.client.redeem(
                    RedeemTarget(machine_name=tpkd.machine_name, category_id=gamekey, keyindex=0)
                )
            except RedeemError as exc:
                self.session.mark_choice_failed(gamekey, item_id)
                record.error = exc.message
                self._progress(f"Failed to redeem {game.title}: {exc.message}")
            results.append(record)
        return results

    async def process_all(self, orders: list[ChoiceOrder]) -> list[RedeemedChoiceKey]:
        if not orders:
            self._progress("No choice orders found")
            return []
        logger.info("Found %s choice orders", len(orders))
        all_results: list[RedeemedChoiceKey] = []
        for order in orders:
            try:
                all_results.extend(await self.process(order))
            except (KeyExportError, httpx.HTTPError) as exc:
                logger.warning("Failed to process choice %s: %s", order.choice_url, exc)
                self.on_progress(f"Error processing {order.human_name}: {exc}")
        return all_results


async def process_all_choices(
    store: KeyValueStore,
    client: HumbleClient,
    session: RedemptionSession | None = None,
    *,
    on_progress: ProgressCallback | None = None,
) -> list[RedeemedChoiceKey]:
    processor = ChoiceProcessor(client, session, on_progress=on_progress)
    return await processor.process_all(find_choice_orders(store))
