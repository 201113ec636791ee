"""Tests for schedule blocks and their recurring series."""
from __future__ import annotations

from barbershop.extensions import db
from barbershop.models import ScheduleBlock


def _block(client, shop, day="2025-01-06", start="12:00", end="13:00", **extra):
    payload = {
        "barber_id": shop["barber_id"],
        "block_date": day,
        "start_time": start,
        "end_time": end,
        "reason": "Lunch",
    }
    payload.update(extra)
    return client.post("/schedule-blocks", json=payload)


def test_create_single_block(client, shop) -> None:
    response = _block(client, shop)

    assert response.status_code == 201
    [block] = response.get_json()["schedule_blocks"]
    assert block["block_date"] == "2025-01-06"
    assert block["start_time"] == "12:00"
    assert block["end_time"] == "13:00"
    assert block["parent_block_id"] is None


def test_recurring_block_links_children_to_parent(client, shop) -> None:
    response = _block(client, shop, recurrence={"type": "weekly", "occurrences": 3})

    assert response.status_code == 201
    blocks = response.get_json()["schedule_blocks"]
    parent_id = blocks[0]["id"]
    assert [b["block_date"] for b in blocks] == ["2025-01-06", "2025-01-13", "2025-01-20"]
    assert [b["parent_block_id"] for b in blocks] == [None, parent_id, parent_id]


def test_start_must_precede_end(client, shop) -> None:
    response = _block(client, shop, start="13:00", end="12:00")

    assert response.status_code == 400


def test_overlapping_block_is_rejected(client, shop) -> None:
    _block(client, shop)

    response = _block(client, shop, start="12:30", end="14:00")

    assert response.status_code == 409
    assert response.get_json()["block"]["start_time"] == "12:00"


def test_blocks_of_different_barbers_may_overlap(client, shop) -> None:
    _block(client, shop)

    response = _block(client, shop, barber_id=None, reason="Shop closed")

    assert response.status_code == 201


def test_list_blocks_includes_shop_wide(client, shop) -> None:
    _block(client, shop)
    _block(client, shop, day="2025-01-07", barber_id=None, reason="Holiday", start="08:00", end="20:00")
    _block(client, shop, day="2025-03-01")

    response = client.get(f"/schedule-blocks?start=2025-01-01&end=2025-01-31&barber_id={shop['barber_id']}")

    assert response.status_code == 200
    assert [b["reason"] for b in response.get_json()["schedule_blocks"]] == ["Lunch", "Holiday"]


def test_delete_single_block_of_series_relinks_rest(app, client, shop) -> None:
    blocks = _block(client, shop, recurrence={"type": "weekly", "occurrences": 3}).get_json()["schedule_blocks"]

    response = client.delete(f"/schedule-blocks/{blocks[0]['id']}")

    assert response.status_code == 200
    assert response.get_json()["deleted"] == 1
    with app.app_context():
        remaining = ScheduleBlock.query.order_by(ScheduleBlock.block_date).all()
        assert [b.block_id for b in remaining] == [blocks[1]["id"], blocks[2]["id"]]
        assert remaining[0].parent_block_id is None
        assert remaining[1].parent_block_id == blocks[1]["id"]


def test_delete_future_blocks(app, client, shop, auth_headers) -> None:
    blocks = _block(client, shop, recurrence={"type": "weekly", "occurrences": 4}).get_json()["schedule_blocks"]

    response = client.delete(f"/schedule-blocks/{blocks[2]['id']}?scope=future", headers=auth_headers("admin"))

    assert response.status_code == 200
    assert response.get_json()["deleted"] == 2
    with app.app_context():
        assert {b.block_id for b in ScheduleBlock.query.all()} == {blocks[0]["id"], blocks[1]["id"]}


def test_delete_whole_series_requires_admin(app, client, anonymous_client, shop, auth_headers) -> None:
    blocks = _block(client, shop, recurrence={"type": "weekly", "occurrences": 3}).get_json()["schedule_blocks"]
    url = f"/schedule-blocks/{blocks[1]['id']}?scope=all"

    assert anonymous_client.delete(url).status_code == 401
    assert client.delete(url, headers=auth_headers("barber", barber_id=shop["barber_id"])).status_code == 403

    response = client.delete(url, headers=auth_headers("admin"))

    assert response.status_code == 200
    assert response.get_json()["deleted"] == 3
    with app.app_context():
        assert db.session.query(ScheduleBlock).count() == 0


def test_invalid_scope(client, shop, auth_headers) -> None:
    block_id = _block(client, shop).get_json()["schedule_blocks"][0]["id"]

    response = client.delete(f"/schedule-blocks/{block_id}?scope=everything", headers=auth_headers("admin"))

    assert response.status_code == 400
