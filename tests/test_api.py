from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_book, make_room
from townbook.config import config
from townbook.models import ItemType
from townbook.schemas.schemas import ReservationCreate

PASSWORD = "Str0ng!pass"


async def sign_up(client, name, email, secret_code=None):
    payload = {
        "name": name,
        "email": email,
        "password": PASSWORD,
        "confirmPassword": PASSWORD,
    }
    if secret_code:
        payload["secretCode"] = secret_code
    response = await client.post("/api/v1/auth/sign-up", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["user"]


async def sign_in(client, email):
    client.cookies.clear()
    response = await client.post("/api/v1/auth/sign-in", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["user"]


async def test_sign_up_roles_and_me(client):
    member = await sign_up(client, "Olena Pchilka", "olena@example.com")
    assert member["role"] == "member"

    me = await client.get("/api/v1/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "olena@example.com"

    client.cookies.clear()
    librarian = await sign_up(client, "Mykola Lysenko", "mykola@example.com", "shelf-keeper")
    assert librarian["role"] == "librarian"


async def test_sign_up_validation(client):
    response = await client.post(
        "/api/v1/auth/sign-up",
        json={
            "name": "Olena",
            "email": "olena@example.com",
            "password": "weakpass",
            "confirmPassword": "weakpass",
        },
    )
    assert response.status_code == 422

    await sign_up(client, "Olena", "olena@example.com")
    duplicate = await client.post(
        "/api/v1/auth/sign-up",
        json={
            "name": "Olena",
            "email": "olena@example.com",
            "password": PASSWORD,
            "confirmPassword": PASSWORD,
        },
    )
    assert duplicate.status_code == 400


async def test_sign_in_and_logout(client, fake_redis):
    await sign_up(client, "Olena", "olena@example.com")

    bad = await client.post(
        "/api/v1/auth/sign-in",
        json={"email": "olena@example.com", "password": "Wr0ng!pass"},
    )
    assert bad.status_code == 401

    await sign_in(client, "olena@example.com")
    refresh_cookie = client.cookies.get("refresh_token")

    refreshed = await client.post("/api/v1/auth/refresh-token")
    assert refreshed.status_code == 200

    logout = await client.post("/api/v1/auth/logout")
    assert logout.status_code == 200
    assert await fake_redis.exists(f"blacklist:{refresh_cookie}")


async def test_anonymous_and_member_access(client):
    anonymous = await client.get("/api/v1/reservations/me")
    assert anonymous.status_code == 401

    await sign_up(client, "Olena", "olena@example.com")
    forbidden = await client.get("/api/v1/reservations/librarian/pending")
    assert forbidden.status_code == 403


async def test_catalog_management_and_search(client):
    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")

    created = await client.post(
        "/api/v1/books",
        json={
            "title": "Zakhar Berkut",
            "author": "Ivan Franko",
            "genres": ["Historical", "Classic"],
            "publicationYear": 1883,
            "copies": 2,
            "location": "Shelf A",
        },
    )
    assert created.status_code == 201, created.text
    book = created.json()
    assert book["totalCopies"] == 2
    assert book["availableCopies"] == 2
    assert book["coverImage"]

    await client.post(
        "/api/v1/books",
        json={"title": "Kaidasheva simia", "author": "Ivan Nechui-Levytskyi", "genres": ["Classic"]},
    )

    by_genre = await client.get("/api/v1/books", params={"genres": ["Historical", "Classic"]})
    assert [b["title"] for b in by_genre.json()["items"]] == ["Zakhar Berkut"]

    by_text = await client.get("/api/v1/books", params={"query": "nechui"})
    assert by_text.json()["total"] == 1

    genres = await client.get("/api/v1/books/genres")
    assert genres.json() == ["Classic", "Historical"]

    more = await client.post(f"/api/v1/books/{book['id']}/copies", json={"count": 1})
    assert more.json()["totalCopies"] == 3

    count = await client.get(f"/api/v1/books/{book['id']}/available-count")
    assert count.json() == {"bookId": book["id"], "available": 3}

    copy_id = more.json()["copies"][0]["id"]
    edited = await client.patch(f"/api/v1/books/copies/{copy_id}", json={"condition": "worn"})
    assert edited.json()["condition"] == "worn"
    assert edited.json()["status"] == "available"


async def test_reservation_flow_over_http(client, db):
    book = await make_book(db, copies=1)

    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")
    await sign_up(client, "Olena", "olena@example.com")

    await sign_in(client, "olena@example.com")
    created = await client.post(
        "/api/v1/reservations",
        json={"itemType": "book", "itemId": book.id, "startDate": datetime.now().isoformat()},
    )
    assert created.status_code == 201, created.text
    reservation = created.json()
    assert reservation["status"] == "Pending"
    assert reservation["displayStatus"] == "Pending"

    await sign_in(client, "mykola@example.com")
    pending = await client.get("/api/v1/reservations/librarian/pending")
    assert [r["id"] for r in pending.json()] == [reservation["id"]]
    assert pending.json()[0]["user"]["email"] == "olena@example.com"

    approved = await client.patch(f"/api/v1/reservations/{reservation['id']}/approve")
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "Approved"

    copies = (await client.get(f"/api/v1/books/{book.id}")).json()["copies"]
    assert [c["status"] for c in copies] == ["reserved"]

    again = await client.patch(f"/api/v1/reservations/{reservation['id']}/approve")
    assert again.status_code == 409

    checked_out = await client.patch(f"/api/v1/reservations/{reservation['id']}/checkout")
    assert checked_out.status_code == 200
    copies = (await client.get(f"/api/v1/books/{book.id}")).json()["copies"]
    assert [c["status"] for c in copies] == ["checked-out"]

    await sign_in(client, "olena@example.com")
    cancel = await client.delete(f"/api/v1/reservations/{reservation['id']}")
    assert cancel.status_code == 409

    returned = await client.patch(f"/api/v1/reservations/{reservation['id']}/return")
    assert returned.json()["status"] == "Completed"
    copies = (await client.get(f"/api/v1/books/{book.id}")).json()["copies"]
    assert [c["status"] for c in copies] == ["available"]

    notifications = await client.get("/api/v1/notifications")
    assert [n["title"] for n in notifications.json()] == ["Reservation approved"]
    unread = await client.get("/api/v1/notifications/unread-count")
    assert unread.json() == {"count": 1}
    await client.patch("/api/v1/notifications/read-all")
    unread = await client.get("/api/v1/notifications/unread-count")
    assert unread.json() == {"count": 0}

    history = await client.get("/api/v1/activities/history")
    assert {a["action"] for a in history.json()["activities"]} >= {"reserve", "return"}


async def test_batch_endpoints_report_failures(client, db):
    book = await make_book(db, copies=1)
    await sign_up(client, "Olena", "olena@example.com")
    created = await client.post(
        "/api/v1/reservations",
        json={"itemType": "book", "itemId": book.id, "startDate": datetime.now().isoformat()},
    )
    reservation_id = created.json()["id"]

    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")
    response = await client.post(
        "/api/v1/reservations/batch/decline",
        json={"ids": [reservation_id, reservation_id + 100]},
    )
    assert response.status_code == 200
    results = response.json()
    assert results[0] == {
        "reservationId": reservation_id,
        "success": True,
        "status": "Declined",
        "error": None,
    }
    assert results[1]["success"] is False


async def test_room_schedule_and_double_booking(client, db):
    day = date.today() + timedelta(days=3)
    room = await make_room(db, day=day)

    await sign_up(client, "Olena", "olena@example.com")
    body = {
        "itemType": "room",
        "itemId": room.id,
        "startDate": datetime.combine(day, datetime.min.time()).isoformat(),
        "slotIndex": 0,
    }
    first = (await client.post("/api/v1/reservations", json=body)).json()

    await sign_up(client, "Iryna", "iryna@example.com")
    second = (await client.post("/api/v1/reservations", json=body)).json()

    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")
    assert (await client.patch(f"/api/v1/reservations/{first['id']}/approve")).status_code == 200
    conflict = await client.patch(f"/api/v1/reservations/{second['id']}/approve")
    assert conflict.status_code == 409

    free = await client.get(f"/api/v1/rooms/{room.id}/free-slots", params={"date": day.isoformat()})
    assert free.json() == []

    # звільнити слот, який утримує підтверджене бронювання, не можна
    blocked = await client.put(
        f"/api/v1/rooms/{room.id}/availability",
        json={"date": day.isoformat(), "slots": [{"startTime": "10:00", "endTime": "11:00", "isAvailable": True}]},
    )
    assert blocked.status_code == 409

    extended = await client.put(
        f"/api/v1/rooms/{room.id}/availability",
        json={
            "date": day.isoformat(),
            "slots": [
                {"startTime": "10:00", "endTime": "11:00", "isAvailable": False},
                {"startTime": "11:00", "endTime": "12:00", "isAvailable": True},
            ],
        },
    )
    assert extended.status_code == 200, extended.text

    free = await client.get(f"/api/v1/rooms/{room.id}/free-slots", params={"date": day.isoformat()})
    assert free.json() == [{"startTime": "11:00", "endTime": "12:00", "isAvailable": True, "index": 1}]

    rooms = await client.get("/api/v1/rooms", params={"date": day.isoformat(), "amenities": ["wifi"]})
    assert [r["id"] for r in rooms.json()] == [room.id]



async def test_reservation_with_mixed_timezones(client, db):
    book = await make_book(db, copies=1)
    await sign_up(client, "Olena", "olena@example.com")

    # браузер надсилає toISOString() з "Z" у кінці
    end = datetime(2030, 6, 10, 10, tzinfo=timezone.utc)
    created = await client.post(
        "/api/v1/reservations",
        json={
            "itemType": "book",
            "itemId": book.id,
            "startDate": "2030-06-01T10:00:00",
            "endDate": end.isoformat().replace("+00:00", "Z"),
        },
    )
    assert created.status_code == 201, created.text
    assert created.json()["startDate"] == "2030-06-01T10:00:00"
    assert created.json()["endDate"] == end.astimezone().replace(tzinfo=None).isoformat()


def test_aware_reservation_dates_become_local_naive():
    aware = datetime(2030, 6, 1, 8, 30, tzinfo=timezone(timedelta(hours=3)))
    data = ReservationCreate(
        item_type=ItemType.BOOK,
        item_id=1,
        start_date=aware,
        end_date=aware + timedelta(days=1),
    )

    assert data.start_date.tzinfo is None
    assert data.start_date == aware.astimezone().replace(tzinfo=None)
    assert data.end_date - data.start_date == timedelta(days=1)


@pytest.mark.parametrize("path", ["/api/v1/stats", "/api/v1/stats/analytics"])
async def test_statistics(client, db, fake_redis, path):
    await make_book(db, copies=2)
    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")

    response = await client.get(path)
    assert response.status_code == 200

    if path == "/api/v1/stats":
        assert response.json()["totalBooks"] == 1
        assert response.json()["availableBooks"] == 1
        assert "stats:dashboard" in fake_redis.store


async def test_members_listing_and_role_update(client):
    member = await sign_up(client, "Olena", "olena@example.com")
    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")

    listing = await client.get("/api/v1/members")
    assert listing.json()["total"] == 2
    assert {m["activeReservations"] for m in listing.json()["items"]} == {0}

    to_admin = await client.patch(f"/api/v1/members/{member['id']}", json={"role": "admin"})
    assert to_admin.status_code == 403

    renamed = await client.patch(f"/api/v1/members/{member['id']}", json={"name": "Olena Teliha"})
    assert renamed.json()["name"] == "Olena Teliha"

    me = await client.patch("/api/v1/members/me", json={"name": "Mykola L."})
    assert me.json()["name"] == "Mykola L."


async def test_dashboard_cache_expires(client, db, fake_redis):
    await make_book(db, copies=1)
    await sign_up(client, "Mykola", "mykola@example.com", "shelf-keeper")

    first = await client.get("/api/v1/stats")
    assert first.json()["totalBooks"] == 1
    assert fake_redis.ttl("stats:dashboard") == config.STATS_CACHE_SECONDS

    await make_book(db, title="Lisova pisnia", author="Lesia Ukrainka")
    cached = await client.get("/api/v1/stats")
    assert cached.json()["totalBooks"] == 1

    fake_redis.advance(config.STATS_CACHE_SECONDS + 1)
    fresh = await client.get("/api/v1/stats")
    assert fresh.json()["totalBooks"] == 2
