from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from conftest import DAY, book_request, make_book, make_profile, make_room, room_request
from townbook.config import config
from townbook.exceptions.lifecycle import (
    ConcurrentUpdate,
    InvalidTransition,
    NoAvailableCopy,
    ReservationForbidden,
    ReservationNotFound,
    SlotConflict,
    commit_changes,
)
from townbook.models import (
    Activity,
    BookCopy,
    CopyStatus,
    Notification,
    Profile,
    Reservation,
    ReservationStatus,
    RoomAvailability,
    UserRole,
)
from townbook.schemas.schemas import CopyUpdate, RoomAvailabilityUpdate, TimeSlot
from townbook.services.availability_service import get_room_schedule, parse_slots
from townbook.services.books_service import update_copy
from townbook.services.lifecycle_service import (
    approve,
    batch_approve,
    batch_decline,
    cancel_reservation,
    checkout,
    complete_book_return,
    complete_return,
    complete_room_return,
    create_reservation,
    decline,
)
from townbook.services.rooms_service import set_room_availability


async def copy_statuses(session_factory, book_id):
    async with session_factory() as fresh:
        result = await fresh.execute(
            select(BookCopy.status).where(BookCopy.book_id == book_id).order_by(BookCopy.id),
        )
        return list(result.scalars().all())


async def actions(session_factory):
    async with session_factory() as fresh:
        result = await fresh.execute(select(Activity.action).order_by(Activity.id))
        return list(result.scalars().all())


async def test_book_reservation_full_cycle(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)

    reservation = await create_reservation(db, member, book_request(book.id))
    assert reservation.status == ReservationStatus.PENDING
    assert reservation.copy_id is None
    assert reservation.title == book.title
    assert reservation.end_date - reservation.start_date == timedelta(days=config.DEFAULT_BOOK_LOAN_DAYS)
    # запит ще не утримує примірник
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.AVAILABLE]

    reservation = await approve(db, reservation.id, librarian)
    assert reservation.status == ReservationStatus.APPROVED
    assert reservation.copy_id is not None
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.RESERVED]

    await checkout(db, reservation.id, librarian)
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.CHECKED_OUT]

    reservation = await complete_book_return(db, reservation.id, member)
    assert reservation.status == ReservationStatus.COMPLETED
    assert reservation.completed_at is not None
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.AVAILABLE]

    logged = await actions(session_factory)
    assert logged.count("return") == 1
    assert logged == ["reserve", "approval", "checkout", "return", "completed_reading"]


async def test_return_of_reserved_copy_without_checkout(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))
    await approve(db, reservation.id, librarian)

    reservation = await complete_return(db, reservation.id, librarian)

    assert reservation.status == ReservationStatus.COMPLETED
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.AVAILABLE]


async def test_decline_never_touches_inventory(db, session_factory, member, librarian):
    book = await make_book(db, copies=2)
    reservation = await create_reservation(db, member, book_request(book.id))

    reservation = await decline(db, reservation.id, librarian)

    assert reservation.status == ReservationStatus.DECLINED
    assert reservation.copy_id is None
    assert await copy_statuses(session_factory, book.id) == [CopyStatus.AVAILABLE] * 2


async def test_terminal_states_reject_transitions(db, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))
    await decline(db, reservation.id, librarian)

    with pytest.raises(InvalidTransition):
        await approve(db, reservation.id, librarian)
    with pytest.raises(InvalidTransition):
        await complete_return(db, reservation.id, librarian)
    with pytest.raises(InvalidTransition):
        await cancel_reservation(db, reservation.id, member)


async def test_approve_twice_is_rejected(db, member, librarian):
    book = await make_book(db, copies=2)
    reservation = await create_reservation(db, member, book_request(book.id))
    await approve(db, reservation.id, librarian)

    with pytest.raises(InvalidTransition):
        await approve(db, reservation.id, librarian)


async def test_approve_without_free_copy(db, member, librarian):
    book = await make_book(db, copies=1)
    other = await make_profile(db, "Iryna")

    first = await create_reservation(db, member, book_request(book.id))
    second = await create_reservation(db, other, book_request(book.id))
    await approve(db, first.id, librarian)

    with pytest.raises(NoAvailableCopy):
        await approve(db, second.id, librarian)

    refreshed = await db.get(Reservation, second.id)
    assert refreshed.status == ReservationStatus.PENDING


async def test_request_for_book_without_available_copies(db, member):
    book = await make_book(db, copies=0)

    with pytest.raises(NoAvailableCopy):
        await create_reservation(db, member, book_request(book.id))


async def test_member_limits(db, member):
    books = [await make_book(db, title=f"Book {i}") for i in range(config.MAX_ACTIVE_RESERVATIONS + 1)]

    await create_reservation(db, member, book_request(books[0].id))
    with pytest.raises(HTTPException) as duplicate:
        await create_reservation(db, member, book_request(books[0].id))
    assert duplicate.value.status_code == 400

    for book in books[1 : config.MAX_ACTIVE_RESERVATIONS]:
        await create_reservation(db, member, book_request(book.id))

    with pytest.raises(HTTPException) as limit:
        await create_reservation(db, member, book_request(books[-1].id))
    assert limit.value.status_code == 400


async def test_cancel_approved_book_frees_copy(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))
    await approve(db, reservation.id, librarian)

    assert await cancel_reservation(db, reservation.id, member) == reservation.id

    assert await copy_statuses(session_factory, book.id) == [CopyStatus.AVAILABLE]
    with pytest.raises(ReservationNotFound):
        await approve(db, reservation.id, librarian)


async def test_cancel_after_checkout_is_refused(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))
    await approve(db, reservation.id, librarian)
    await checkout(db, reservation.id, librarian)

    with pytest.raises(InvalidTransition):
        await cancel_reservation(db, reservation.id, member)

    assert await copy_statuses(session_factory, book.id) == [CopyStatus.CHECKED_OUT]


async def test_member_cannot_touch_foreign_reservation(db, member, librarian):
    book = await make_book(db, copies=1)
    stranger = await make_profile(db, "Petro")
    reservation = await create_reservation(db, member, book_request(book.id))

    with pytest.raises(ReservationForbidden):
        await cancel_reservation(db, reservation.id, stranger)


async def test_librarian_cancel_notifies_owner(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))

    await cancel_reservation(db, reservation.id, librarian)

    async with session_factory() as fresh:
        result = await fresh.execute(select(Notification).where(Notification.user_id == member.id))
        titles = [n.title for n in result.scalars().all()]
    assert titles == ["Reservation cancelled"]


async def test_batch_approve_reports_each_result(db, session_factory, member, librarian):
    book = await make_book(db, copies=3)
    other = await make_profile(db, "Iryna")
    third = await make_profile(db, "Andrii")

    a = await create_reservation(db, member, book_request(book.id))
    b = await create_reservation(db, other, book_request(book.id))
    c = await create_reservation(db, third, book_request(book.id))
    await decline(db, b.id, librarian)

    results = await batch_approve(db, [a.id, b.id, c.id, 9999], librarian)

    assert [r["reservation_id"] for r in results] == [a.id, b.id, c.id, 9999]
    assert [r["success"] for r in results] == [True, False, True, False]
    assert results[0]["status"] == "Approved"
    assert "Declined" in results[1]["error"]
    assert results[3]["error"] == "Reservation 9999 not found"
    assert await copy_statuses(session_factory, book.id) == [
        CopyStatus.RESERVED,
        CopyStatus.RESERVED,
        CopyStatus.AVAILABLE,
    ]


async def test_batch_failure_keeps_caller_session_usable(db, member, librarian):
    book = await make_book(db, copies=1)
    other = await make_profile(db, "Iryna")

    a = await create_reservation(db, member, book_request(book.id))
    b = await create_reservation(db, other, book_request(book.id))

    # другий запит не отримає примірник, і його відкат не має зачепити сесію виклику
    results = await batch_approve(db, [a.id, b.id], librarian)
    assert [r["success"] for r in results] == [True, False]
    assert results[1]["error"] == f"No available copies of book {book.id}"

    assert librarian.role == UserRole.LIBRARIAN
    assert (a.id, b.id) == (results[0]["reservation_id"], results[1]["reservation_id"])
    assert a.title == book.title

    statuses = await db.execute(
        select(Reservation.id, Reservation.status)
        .where(Reservation.id.in_([a.id, b.id]))
        .order_by(Reservation.id),
    )
    assert [status for _, status in statuses.all()] == [
        ReservationStatus.APPROVED,
        ReservationStatus.PENDING,
    ]


async def test_batch_decline(db, member, librarian):
    book = await make_book(db, copies=1)
    reservation = await create_reservation(db, member, book_request(book.id))

    results = await batch_decline(db, [reservation.id], librarian)

    assert results == [
        {"reservation_id": reservation.id, "success": True, "status": "Declined", "error": None},
    ]


async def test_concurrent_approval_is_detected(db, session_factory, member, librarian):
    book = await make_book(db, copies=2)
    reservation = await create_reservation(db, member, book_request(book.id))

    async with session_factory() as other:
        stale = await other.get(Reservation, reservation.id)
        assert stale.status == ReservationStatus.PENDING
        other_librarian = await other.get(Profile, librarian.id)

        await approve(db, reservation.id, librarian)

        with pytest.raises(ConcurrentUpdate):
            await approve(other, reservation.id, other_librarian)

    # друга спроба не закріпила ще один примірник
    statuses = await copy_statuses(session_factory, book.id)
    assert sorted(statuses) == [CopyStatus.AVAILABLE, CopyStatus.RESERVED]


async def test_room_reservation_cycle(db, member, librarian):
    room = await make_room(db)

    reservation = await create_reservation(db, member, room_request(room.id))
    assert reservation.slot_index == 0
    assert reservation.start_date.hour == 10
    assert reservation.end_date.hour == 11

    await approve(db, reservation.id, librarian)
    schedule = await get_room_schedule(db, room.id, DAY)
    assert parse_slots(schedule.slots)[0]["isAvailable"] is False

    await complete_room_return(db, reservation.id, member)
    schedule = await get_room_schedule(db, room.id, DAY)
    assert parse_slots(schedule.slots)[0]["isAvailable"] is True


async def test_room_return_frees_only_its_own_slot(db, member, librarian):
    room = await make_room(
        db,
        slots=[
            {"startTime": "10:00", "endTime": "11:00", "isAvailable": True},
            {"startTime": "11:00", "endTime": "12:00", "isAvailable": True},
        ],
    )
    other = await make_profile(db, "Iryna")
    first = await create_reservation(db, member, room_request(room.id, 0))
    second = await create_reservation(db, other, room_request(room.id, 1))
    await approve(db, first.id, librarian)
    await approve(db, second.id, librarian)

    await complete_return(db, first.id, member)

    schedule = await get_room_schedule(db, room.id, DAY)
    assert [slot["isAvailable"] for slot in parse_slots(schedule.slots)] == [True, False]


async def test_double_booked_room_slot_is_rejected(db, member, librarian):
    room = await make_room(db)
    other = await make_profile(db, "Iryna")

    first = await create_reservation(db, member, room_request(room.id))
    second = await create_reservation(db, other, room_request(room.id))

    await approve(db, first.id, librarian)
    with pytest.raises(SlotConflict) as conflict:
        await approve(db, second.id, librarian)
    assert conflict.value.status_code == 409

    with pytest.raises(SlotConflict):
        await create_reservation(db, await make_profile(db, "Taras"), room_request(room.id))


async def test_room_request_for_missing_slot(db, member):
    room = await make_room(db)

    with pytest.raises(SlotConflict):
        await create_reservation(db, member, room_request(room.id, slot_index=5))


async def test_checkout_only_for_books(db, member, librarian):
    room = await make_room(db)
    reservation = await create_reservation(db, member, room_request(room.id))
    await approve(db, reservation.id, librarian)

    with pytest.raises(InvalidTransition):
        await checkout(db, reservation.id, librarian)


async def test_approve_refuses_rewritten_slot(db, member, librarian):
    room = await make_room(db)
    reservation = await create_reservation(db, member, room_request(room.id))

    # під тим самим індексом тепер інші години
    rewritten = RoomAvailabilityUpdate(date=DAY, slots=[TimeSlot(start_time="15:00", end_time="16:00")])
    await set_room_availability(db, room.id, rewritten, librarian)

    with pytest.raises(SlotConflict) as conflict:
        await approve(db, reservation.id, librarian)
    assert "no longer matches" in conflict.value.detail

    schedule = await get_room_schedule(db, room.id, DAY)
    assert parse_slots(schedule.slots) == [{"startTime": "15:00", "endTime": "16:00", "isAvailable": True}]
    assert (await db.get(Reservation, reservation.id)).status == ReservationStatus.PENDING


async def test_schedule_cannot_move_hours_of_approved_slot(db, member, librarian):
    room = await make_room(db)
    reservation = await create_reservation(db, member, room_request(room.id))
    await approve(db, reservation.id, librarian)

    moved = RoomAvailabilityUpdate(
        date=DAY,
        slots=[TimeSlot(start_time="10:30", end_time="11:30", is_available=False)],
    )
    with pytest.raises(HTTPException) as conflict:
        await set_room_availability(db, room.id, moved, librarian)
    assert conflict.value.status_code == 409

    schedule = await get_room_schedule(db, room.id, DAY)
    assert parse_slots(schedule.slots)[0]["startTime"] == "10:00"


async def test_stale_copy_edit_is_reported_as_conflict(db, session_factory, member, librarian):
    book = await make_book(db, copies=1)
    copy_id = await db.scalar(select(BookCopy.id).where(BookCopy.book_id == book.id))
    reservation = await create_reservation(db, member, book_request(book.id))

    async with session_factory() as other:
        stale = await other.get(BookCopy, copy_id)
        assert stale.status == CopyStatus.AVAILABLE

        await approve(db, reservation.id, librarian)

        with pytest.raises(ConcurrentUpdate):
            await update_copy(other, copy_id, CopyUpdate(condition="worn"))

    assert await copy_statuses(session_factory, book.id) == [CopyStatus.RESERVED]


async def test_duplicate_schedule_is_reported_as_conflict(db):
    room = await make_room(db)

    db.add(RoomAvailability(room_id=room.id, date=DAY, slots=[]))
    with pytest.raises(ConcurrentUpdate):
        await commit_changes(db)

    schedule = await get_room_schedule(db, room.id, DAY)
    assert len(parse_slots(schedule.slots)) == 1
