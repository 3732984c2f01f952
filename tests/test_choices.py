from urllib.parse import parse_qs

import httpx
import pytest
import respx

from keyexport.ingest.models import ChoiceOrder
from keyexport.logic.choices import ChoiceProcessor, process_all_choices
from keyexport.logic.session import RedemptionSession
from keyexport.store.records import encode_record

from conftest import BASE_URL, CHOOSE_URL, REDEEM_URL, choice_page, load_fixture, make_client, order_record, page_html, tpkd

ORDER = ChoiceOrder(gamekey="GK1", choice_url="march-2024", human_name="Humble Choice March 2024")
PAGE_URL = f"{BASE_URL}/membership/march-2024"


def redeemed_keytypes(route) -> list[str]:
    return [parse_qs(call.request.content.decode())["keytype"][0] for call in route.calls]


@pytest.mark.asyncio
async def test_redeemed_and_unredeemed_items():
    messages: list[str] = []
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=load_fixture("http/humble/march-2024.html")))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        redeem = router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "NEW-KEY"}))
        async with httpx.AsyncClient() as session:
            processor = ChoiceProcessor(make_client(session), RedemptionSession(), on_progress=messages.append)
            results = await processor.process(ORDER)

    assert choose.call_count == 1
    assert redeem.call_count == 1
    assert parse_qs(choose.calls.last.request.content.decode())["chosen_identifiers[]"] == ["betaracer"]
    assert [(r.game_name, r.key, r.error) for r in results] == [
        ("Alpha Quest", "AAAAA-BBBBB-CCCCC", None),
        ("Beta Racer", "NEW-KEY", None),
    ]
    assert all(r.choice_title == "Humble Choice March 2024" for r in results)
    assert messages == [
        "Fetching: Humble Choice March 2024",
        "Choosing 1 games for Humble Choice March 2024",
        "Redeeming: Beta Racer",
    ]


@pytest.mark.asyncio
async def test_second_run_does_not_reselect():
    html = page_html(choice_page({"alpha": {"title": "Alpha", "tpkds": [tpkd("alpha_steam")]}}))
    session_state = RedemptionSession()
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "K"}))
        async with httpx.AsyncClient() as session:
            processor = ChoiceProcessor(make_client(session), session_state)
            await processor.process(ORDER)
            await processor.process(ORDER)
    assert choose.call_count == 1


@pytest.mark.asyncio
async def test_nothing_to_choose_skips_selection_call():
    games = {
        "chosen": {"title": "Chosen", "tpkds": [tpkd("chosen_steam")]},
        "done": {"title": "Done", "tpkds": [tpkd("done_steam", redeemed_key_val="OLD")]},
        "keyless": {"title": "Keyless", "tpkds": [tpkd("keyless_game", key_type="generic_keyless")]},
    }
    html = page_html(choice_page(games, chosen=("chosen",)))
    async with respx.mock(assert_all_called=False) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        redeem = router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "K"}))
        async with httpx.AsyncClient() as session:
            results = await ChoiceProcessor(make_client(session)).process(ORDER)
    assert choose.call_count == 0
    assert redeemed_keytypes(redeem) == ["chosen_steam"]
    assert [(r.game_name, r.key) for r in results] == [("Chosen", "K"), ("Done", "OLD")]


@pytest.mark.asyncio
async def test_expired_and_sold_out_are_labelled_without_calls():
    games = {
        "old": {"title": "Old", "tpkds": [tpkd("old_steam", is_expired=True)]},
        "gone": {"title": "Gone", "tpkds": [tpkd("gone_steam", sold_out=True)]},
    }
    html = page_html(choice_page(games))
    async with respx.mock(assert_all_called=False) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        redeem = router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "K"}))
        async with httpx.AsyncClient() as session:
            results = await ChoiceProcessor(make_client(session)).process(ORDER)
    assert choose.call_count == 0
    assert redeem.call_count == 0
    assert [(r.game_name, r.key, r.error) for r in results] == [("Old", "", "Expired"), ("Gone", "", "Sold out")]


@pytest.mark.asyncio
async def test_failure_is_isolated_and_remembered():
    games = {
        "first": {"title": "First", "tpkds": [tpkd("first_a"), tpkd("first_b")]},
        "second": {"title": "Second", "tpkds": [tpkd("second_steam")]},
    }
    html = page_html(choice_page(games))
    session_state = RedemptionSession()
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        redeem = router.post(REDEEM_URL).mock(
            side_effect=[
                httpx.Response(200, json={"success": False, "error_msg": "No more keys"}),
                httpx.Response(200, json={"success": True, "key": "B-KEY"}),
                httpx.Response(200, json={"success": True, "key": "S-KEY"}),
                httpx.Response(200, json={"success": True, "key": "S-KEY-AGAIN"}),
            ]
        )
        async with httpx.AsyncClient() as session:
            processor = ChoiceProcessor(make_client(session), session_state)
            first_run = await processor.process(ORDER)
            second_run = await processor.process(ORDER)

    assert [(r.machine_name, r.key, r.error) for r in first_run] == [
        ("first_a", "", "No more keys"),
        ("first_b", "B-KEY", None),
        ("second_steam", "S-KEY", None),
    ]
    assert session_state.choice_failed("GK1", "first")
    assert [r.machine_name for r in second_run] == ["second_steam"]
    assert redeemed_keytypes(redeem) == ["first_a", "first_b", "second_steam", "second_steam"]


@pytest.mark.asyncio
async def test_failed_items_are_left_out_of_selection():
    games = {
        "bad": {"title": "Bad", "tpkds": [tpkd("bad_steam")]},
        "good": {"title": "Good", "tpkds": [tpkd("good_steam")]},
    }
    html = page_html(choice_page(games))
    session_state = RedemptionSession()
    session_state.mark_choice_failed("GK1", "bad")
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "G"}))
        async with httpx.AsyncClient() as session:
            results = await ChoiceProcessor(make_client(session), session_state).process(ORDER)
    assert parse_qs(choose.calls.last.request.content.decode())["chosen_identifiers[]"] == ["good"]
    assert [r.machine_name for r in results] == ["good_steam"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("page_kwargs", "message"),
    [
        ({"choiceless": False}, "Skipping Humble Choice March 2024 (old-style choice)"),
        ({"can_redeem": False}, "Skipping Humble Choice March 2024 (cannot redeem)"),
    ],
)
async def test_unsupported_pages_are_skipped(page_kwargs, message):
    html = page_html(choice_page({"a": {"title": "A", "tpkds": [tpkd("a_steam")]}}, **page_kwargs))
    messages: list[str] = []
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        async with httpx.AsyncClient() as session:
            results = await ChoiceProcessor(make_client(session), on_progress=messages.append).process(ORDER)
    assert results == []
    assert messages[-1] == message


@pytest.mark.asyncio
async def test_process_all_continues_after_order_failure(store):
    store.set("v2|BROKEN", encode_record(order_record("BROKEN", category="subscriptioncontent",
                                                      human_name="Broken Month", choice_url="broken")))
    store.set("v2|GK1", encode_record(order_record("GK1", category="subscriptioncontent",
                                                   human_name="Humble Choice March 2024", choice_url="march-2024")))
    html = page_html(choice_page({"a": {"title": "A", "tpkds": [tpkd("a_steam", redeemed_key_val="A-KEY")]}}))
    messages: list[str] = []
    async with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE_URL}/membership/broken").mock(return_value=httpx.Response(500))
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        async with httpx.AsyncClient() as session:
            results = await process_all_choices(store, make_client(session), on_progress=messages.append)
    assert [(r.game_name, r.key) for r in results] == [("A", "A-KEY")]
    assert "Error processing Broken Month: Failed to fetch choice page: 500" in messages


@pytest.mark.asyncio
async def test_selection_rejection_fails_only_that_order(store):
    store.set("v2|GK1", encode_record(order_record("GK1", category="subscriptioncontent",
                                                   human_name="Humble Choice March 2024", choice_url="march-2024")))
    html = page_html(choice_page({"a": {"title": "A", "tpkds": [tpkd("a_steam")]}}))
    messages: list[str] = []
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": False, "error_msg": "Nope"}))
        async with httpx.AsyncClient() as session:
            results = await process_all_choices(store, make_client(session), on_progress=messages.append)
    assert results == []
    assert messages[-1] == "Error processing Humble Choice March 2024: Nope"


@pytest.mark.asyncio
async def test_no_choice_orders(store):
    messages: list[str] = []
    async with httpx.AsyncClient() as session:
        results = await process_all_choices(store, make_client(session), on_progress=messages.append)
    assert results == []
    assert messages == ["No choice orders found"]


@pytest.mark.asyncio
async def test_null_title_and_machine_name_do_not_abort_the_order():
    games = {
        "mystery": {"title": None, "tpkds": [{"machine_name": None, "key_type": "steam"}]},
        "good": {"title": "Good", "tpkds": [tpkd("good_steam")]},
    }
    html = page_html(choice_page(games))
    async with respx.mock(assert_all_called=True) as router:
        router.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
        choose = router.post(CHOOSE_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        redeem = router.post(REDEEM_URL).mock(return_value=httpx.Response(200, json={"success": True, "key": "G"}))
        async with httpx.AsyncClient() as session:
            results = await ChoiceProcessor(make_client(session)).process(ORDER)
    assert parse_qs(choose.calls.last.request.content.decode())["chosen_identifiers[]"] == ["good"]
    assert redeemed_keytypes(redeem) == ["good_steam"]
    assert [(r.game_name, r.machine_name, r.key, r.error) for r in results] == [
        ("", "", "", "Missing machine name"),
        ("Good", "good_steam", "G", None),
    ]
