"""
Concurrency scenarios: many simultaneous applies and cancels against the same
class must never push occupancy past capacity or admit a user twice.
"""

import asyncio
import uuid

import pytest

from enrollment.core.exceptions import AlreadyApplied, CapacityExceeded


def split_results(results):
    admitted = [r for r in results if not isinstance(r, BaseException)]
    errors = [r for r in results if isinstance(r, BaseException)]
    return admitted, errors


@pytest.mark.asyncio
async def test_fifty_users_race_for_five_seats(core, small_class):
    """50 concurrent applies for 5 seats: exactly 5 admitted, 45 rejected as full."""
    users = [uuid.uuid4() for _ in range(50)]

    results = await asyncio.gather(
        *(core.apply(small_class.id, user_id) for user_id in users),
        return_exceptions=True,
    )
    admitted, errors = split_results(results)

    assert len(admitted) == 5
    assert len(errors) == 45
    assert all(isinstance(e, CapacityExceeded) for e in errors)
    assert len({a.user_id for a in admitted}) == 5

    occupancy = await core.get_occupancy(small_class.id)
    assert occupancy.current == 5
    assert occupancy.is_full is True

    # An admitted user re-applying is told they already applied
    first = admitted[0].user_id
    with pytest.raises(AlreadyApplied):
        await core.apply(small_class.id, first)

    # Cancelling frees exactly one seat, which a new user can take
    await core.cancel(small_class.id, first)
    assert (await core.get_occupancy(small_class.id)).current == 4

    record = await core.apply(small_class.id, uuid.uuid4())
    assert record.class_id == small_class.id
    assert (await core.get_occupancy(small_class.id)).current == 5


@pytest.mark.asyncio
async def test_same_user_applies_twenty_times_at_once(core, small_class):
    user_id = uuid.uuid4()

    results = await asyncio.gather(
        *(core.apply(small_class.id, user_id) for _ in range(20)),
        return_exceptions=True,
    )
    admitted, errors = split_results(results)

    assert len(admitted) == 1
    assert len(errors) == 19
    assert all(isinstance(e, AlreadyApplied) for e in errors)
    assert (await core.get_occupancy(small_class.id)).current == 1


@pytest.mark.asyncio
async def test_cancel_racing_with_applies_on_full_class(core, make_class):
    """While one admitted user cancels, late applicants can take at most the freed seat."""
    mclass = await make_class(capacity=3)
    holders = [uuid.uuid4() for _ in range(3)]
    for user_id in holders:
        await core.apply(mclass.id, user_id)

    latecomers = [uuid.uuid4() for _ in range(10)]
    results = await asyncio.gather(
        core.cancel(mclass.id, holders[0]),
        *(core.apply(mclass.id, user_id) for user_id in latecomers),
        return_exceptions=True,
    )

    assert results[0] is None
    admitted, errors = split_results(results[1:])
    assert len(admitted) <= 1
    assert all(isinstance(e, CapacityExceeded) for e in errors)

    occupancy = await core.get_occupancy(mclass.id)
    assert occupancy.current == 3 - 1 + len(admitted)
    assert occupancy.current <= occupancy.max


@pytest.mark.asyncio
async def test_classes_fill_independently(core, make_class):
    first = await make_class(capacity=2, title="Pottery Basics")
    second = await make_class(capacity=3, title="Life Drawing")

    results = await asyncio.gather(
        *(core.apply(first.id, uuid.uuid4()) for _ in range(10)),
        *(core.apply(second.id, uuid.uuid4()) for _ in range(10)),
        return_exceptions=True,
    )
    admitted, errors = split_results(results)

    assert sum(1 for a in admitted if a.class_id == first.id) == 2
    assert sum(1 for a in admitted if a.class_id == second.id) == 3
    assert len(errors) == 15
    assert all(isinstance(e, CapacityExceeded) for e in errors)

    assert (await core.get_occupancy(first.id)).current == 2
    assert (await core.get_occupancy(second.id)).current == 3


@pytest.mark.asyncio
async def test_occupancy_reads_during_admissions_stay_within_capacity(core, small_class):
    applies = [core.apply(small_class.id, uuid.uuid4()) for _ in range(10)]
    reads = [core.get_occupancy(small_class.id) for _ in range(10)]

    results = await asyncio.gather(*applies, *reads, return_exceptions=True)
    snapshots = results[10:]

    for snapshot in snapshots:
        assert not isinstance(snapshot, BaseException)
        assert 0 <= snapshot.current <= snapshot.max

    assert (await core.get_occupancy(small_class.id)).current == 5


@pytest.mark.asyncio
async def test_roster_matches_occupancy_after_race(core, make_class):
    mclass = await make_class(capacity=4)

    await asyncio.gather(
        *(core.apply(mclass.id, uuid.uuid4()) for _ in range(12)),
        return_exceptions=True,
    )

    roster = await core.list_applications_for_class(mclass.id)
    assert roster.total == 4
    assert len({a.user_id for a in roster.items}) == 4
    assert (await core.get_class(mclass.id)).is_fully_booked is True


@pytest.mark.asyncio
async def test_occupancy_is_stable_without_writes(core, small_class):
    for _ in range(3):
        await core.apply(small_class.id, uuid.uuid4())

    serial = [await core.get_occupancy(small_class.id) for _ in range(5)]
    concurrent = await asyncio.gather(*(core.get_occupancy(small_class.id) for _ in range(10)))

    assert {(o.current, o.max) for o in serial + list(concurrent)} == {(3, 5)}
