from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from routine_compliance.models import (
    ROUTINE_PUBLISHED,
    STATUS_LATE,
    STATUS_MISSED,
    STATUS_ON_TIME,
    STATUS_PENDING,
)
from routine_compliance.repositories.completions import CompletionRepository

UTC = timezone.utc
DAY = date(2025, 11, 7)
AT_13 = datetime(2025, 11, 7, 13, 0, tzinfo=UTC)


@pytest.fixture
def products(profile, make_routine, make_product):
    routine = make_routine(profile, status=ROUTINE_PUBLISHED)
    return [make_product(routine, order=i, product_name=f"P{i}") for i in range(3)]


def test_update_completion_on_time(db_session, profile, products, make_step):
    step = make_step(products[0])
    repo = CompletionRepository(db_session)

    record = repo.update_completion(step.id, profile.id, True, AT_13)
    db_session.commit()

    assert record.status == STATUS_ON_TIME
    assert record.completed_at == AT_13


def test_update_completion_other_user_is_none(db_session, products, make_step, make_profile):
    step = make_step(products[0])
    stranger = make_profile()

    record = CompletionRepository(db_session).update_completion(step.id, stranger.id, True, AT_13)

    assert record is None
    db_session.refresh(step)
    assert step.status == STATUS_PENDING


def test_update_completion_past_grace_is_none(db_session, profile, products, make_step):
    step = make_step(products[0])
    record = CompletionRepository(db_session).update_completion(
        step.id, profile.id, True, datetime(2025, 11, 7, 21, 0, tzinfo=UTC)
    )
    assert record is None
    assert step.status == STATUS_PENDING


def test_batch_by_date_skips_missed(db_session, profile, products, make_step):
    make_step(products[0])
    make_step(products[1])
    missed = make_step(products[2], status=STATUS_MISSED)

    repo = CompletionRepository(db_session)
    records = repo.update_completions_by_date(profile.id, DAY, True, AT_13)
    db_session.commit()

    assert len(records) == 2
    assert all(r.status == STATUS_ON_TIME for r in records)
    assert missed.id not in {r.id for r in records}
    db_session.refresh(missed)
    assert missed.status == STATUS_MISSED


def test_batch_by_date_leaves_other_users_and_dates(
    db_session, profile, products, make_step, make_profile, make_routine, make_product
):
    mine_today = make_step(products[0])
    mine_tomorrow = make_step(
        products[0],
        scheduled_date=DAY + timedelta(days=1),
        on_time_deadline=datetime(2025, 11, 8, 14, 0, tzinfo=UTC),
        grace_period_end=datetime(2025, 11, 8, 20, 0, tzinfo=UTC),
    )
    other = make_profile()
    other_product = make_product(make_routine(other, status=ROUTINE_PUBLISHED))
    theirs = make_step(other_product)

    CompletionRepository(db_session).update_completions_by_date(profile.id, DAY, True, AT_13)
    db_session.commit()

    for step in (mine_today, mine_tomorrow, theirs):
        db_session.refresh(step)
    assert mine_today.status == STATUS_ON_TIME
    assert mine_tomorrow.status == STATUS_PENDING
    assert theirs.status == STATUS_PENDING


def test_batch_by_date_reports_already_completed_rows(db_session, profile, products, make_step):
    done = make_step(products[0], status=STATUS_LATE, completed_at=datetime(2025, 11, 7, 15, 0, tzinfo=UTC))
    records = CompletionRepository(db_session).update_completions_by_date(profile.id, DAY, True, AT_13)

    assert [r.id for r in records] == [done.id]
    assert done.status == STATUS_LATE
    assert done.completed_at == datetime(2025, 11, 7, 15, 0, tzinfo=UTC)


def test_batch_undo_skips_pending(db_session, profile, products, make_step):
    make_step(products[0])
    done = make_step(products[1], status=STATUS_ON_TIME, completed_at=AT_13)

    records = CompletionRepository(db_session).update_completions_by_date(profile.id, DAY, False)

    assert [r.id for r in records] == [done.id]
    assert done.status == STATUS_PENDING
    assert done.completed_at is None


def test_batch_by_ids_ignores_foreign_ids(
    db_session, profile, products, make_step, make_profile, make_routine, make_product
):
    mine = make_step(products[0])
    other = make_profile()
    theirs = make_step(make_product(make_routine(other, status=ROUTINE_PUBLISHED)))

    records = CompletionRepository(db_session).update_completions_by_step_ids(
        profile.id, [mine.id, theirs.id], True, AT_13
    )

    assert [r.id for r in records] == [mine.id]
    assert theirs.status == STATUS_PENDING


def test_find_by_date_sweeps_when_given_now(db_session, profile, products, make_step):
    step = make_step(products[0])
    rows = CompletionRepository(db_session).find_by_user_and_date(
        profile.id, DAY, datetime(2025, 11, 7, 21, 0, tzinfo=UTC)
    )
    assert [r.status for r in rows] == [STATUS_MISSED]
    assert step.status == STATUS_MISSED


def test_find_by_date_orders_morning_first(db_session, profile, make_routine, make_product, make_step):
    routine = make_routine(profile, status=ROUTINE_PUBLISHED)
    evening = make_step(make_product(routine, time_of_day="evening", order=0))
    morning = make_step(make_product(routine, time_of_day="morning", order=0))

    rows = CompletionRepository(db_session).find_by_user_and_date(profile.id, DAY)
    assert [r.id for r in rows] == [morning.id, evening.id]


def test_mark_overdue_set_based(db_session, profile, products, make_step):
    overdue = make_step(products[0])
    fresh = make_step(
        products[1],
        on_time_deadline=datetime(2025, 11, 8, 14, 0, tzinfo=UTC),
        grace_period_end=datetime(2025, 11, 8, 20, 0, tzinfo=UTC),
    )
    settled = make_step(products[2], status=STATUS_ON_TIME, completed_at=AT_13)

    repo = CompletionRepository(db_session)
    count = repo.mark_overdue(datetime(2025, 11, 7, 21, 0, tzinfo=UTC))
    db_session.commit()

    assert count == 1
    for step in (overdue, fresh, settled):
        db_session.refresh(step)
    assert overdue.status == STATUS_MISSED
    assert fresh.status == STATUS_PENDING
    assert settled.status == STATUS_ON_TIME

    assert repo.mark_overdue(datetime(2025, 11, 7, 21, 0, tzinfo=UTC)) == 0


def test_mark_overdue_stamps_updated_at_from_database_clock(db_session, products, make_step):
    step = make_step(products[0])
    far_future = datetime(2099, 1, 1, tzinfo=UTC)

    assert CompletionRepository(db_session).mark_overdue(far_future) == 1
    db_session.commit()

    db_session.refresh(step)
    assert step.status == STATUS_MISSED
    assert step.updated_at < far_future


def test_mark_overdue_scoped_to_user(
    db_session, profile, products, make_step, make_profile, make_routine, make_product
):
    mine = make_step(products[0])
    other = make_profile()
    theirs = make_step(make_product(make_routine(other, status=ROUTINE_PUBLISHED)))

    count = CompletionRepository(db_session).mark_overdue(
        datetime(2025, 11, 7, 21, 0, tzinfo=UTC), profile.id
    )
    db_session.commit()

    assert count == 1
    db_session.refresh(theirs)
    db_session.refresh(mine)
    assert mine.status == STATUS_MISSED
    assert theirs.status == STATUS_PENDING


def test_one_row_per_product_and_date(db_session, products, make_step):
    make_step(products[0])
    with pytest.raises(IntegrityError):
        make_step(products[0])
    db_session.rollback()


def test_delete_for_product_filters(db_session, profile, products, make_step):
    product = products[0]
    past_done = make_step(
        product,
        scheduled_date=DAY - timedelta(days=1),
        on_time_deadline=datetime(2025, 11, 6, 14, 0, tzinfo=UTC),
        grace_period_end=datetime(2025, 11, 6, 20, 0, tzinfo=UTC),
        status=STATUS_ON_TIME,
        completed_at=datetime(2025, 11, 6, 13, 0, tzinfo=UTC),
    )
    make_step(product)
    make_step(
        product,
        scheduled_date=DAY + timedelta(days=1),
        on_time_deadline=datetime(2025, 11, 8, 14, 0, tzinfo=UTC),
        grace_period_end=datetime(2025, 11, 8, 20, 0, tzinfo=UTC),
    )

    repo = CompletionRepository(db_session)
    removed = repo.delete_for_product(product.id, from_date=DAY, statuses=[STATUS_PENDING])
    db_session.commit()

    assert removed == 2
    assert [r.id for r in repo.find_by_product(product.id)] == [past_done.id]
