import json
from pathlib import Path

import pytest

from keyexport.ingest.humble import HumbleClient
from keyexport.store.kv import MemoryStore
from keyexport.store.records import encode_record
from keyexport.utils.throttle import HostThrottle

FIXTURES = Path(__file__).parent / "fixtures"
BASE_URL = "https://www.humblebundle.com"
REDEEM_URL = f"{BASE_URL}/humbler/redeemkey"
CHOOSE_URL = f"{BASE_URL}/humbler/choosecontent"


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text()


def page_html(data: dict) -> str:
    payload = json.dumps(data)
    return (
        "<html><head><title>Membership</title></head><body>"
        f'<script id="webpack-monthly-product-data" type="application/json">{payload}</script>'
        "</body></html>"
    )


def tpkd(machine_name: str, **overrides) -> dict:
    data = {
        "machine_name": machine_name,
        "key_type": "steam",
        "human_name": machine_name.replace("_", " ").title(),
        "is_expired": False,
        "sold_out": False,
    }
    data.update(overrides)
    return data


def choice_page(
    games: dict[str, dict],
    *,
    chosen: tuple[str, ...] = (),
    gamekey: str = "GK1",
    choiceless: bool = True,
    can_redeem: bool = True,
    title: str = "Humble Choice March 2024",
) -> dict:
    return {
        "parentIdentifier": "initial",
        "productIsChoiceless": choiceless,
        "contentChoiceOptions": {
            "gamekey": gamekey,
            "canRedeemGames": can_redeem,
            "title": title,
            "contentChoiceData": {
                "display_order": list(games),
                "game_data": games,
            },
            "contentChoicesMade": {"initial": {"choices_made": list(chosen)}},
        },
    }


def order_record(
    gamekey: str,
    *,
    category: str = "bundle",
    human_name: str = "Test Bundle",
    tpks: list[dict] | None = None,
    choice_url: str | None = None,
    created: str = "2024-01-01T10:00:00",
) -> dict:
    product = {"category": category, "human_name": human_name}
    if choice_url:
        product["choice_url"] = choice_url
    return {
        "gamekey": gamekey,
        "created": created,
        "product": product,
        "tpkd_dict": {"all_tpks": tpks or []},
    }


def make_client(session) -> HumbleClient:
    return HumbleClient(session=session, throttle=HostThrottle(rate=1000.0))


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def seeded_store(store):
    store.set(
        "v2|BUNDLE1",
        encode_record(
            order_record(
                "BUNDLE1",
                human_name="Puzzle Bundle",
                tpks=[
                    {"machine_name": "puzzler_steam", "human_name": "Puzzler", "key_type": "steam",
                     "steam_app_id": 440, "keyindex": 0, "redeemed_key_val": "ABCDE-FGHIJ"},
                    {"machine_name": "mazerunner_steam", "human_name": "Maze Runner", "key_type": "steam",
                     "steam_app_id": 570, "keyindex": 1},
                ],
            )
        ),
    )
    store.set(
        "v2|CHOICE1",
        encode_record(
            order_record(
                "CHOICE1",
                category="subscriptioncontent",
                human_name="Humble Choice March 2024",
                choice_url="march-2024",
            )
        ),
    )
    store.set("v2|EMPTY", encode_record(order_record("EMPTY", category="storefront")))
    store.set("other-key", "unrelated")
    return store
