import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine

from cjms.models.database import NotFoundError, create_schema
from cjms.models.refunds import Refund, RefundModel
from cjms.models.status_history import Status


def _now():
    return datetime.now(timezone.utc)


def _text():
    return "r-" + uuid.uuid4().hex


def make_fake_refund():
    return Refund.new(
        refund_id=_text(),
        subscription_id=_text(),
        refund_created=_now(),
        refund_amount=1299,
        refund_status=_text(),
        refund_reason=_text(),
        correction_file_date=None,
        id=uuid.uuid4(),
    )


@pytest.fixture
def model(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'refunds.sqlite'}")
    create_schema(engine)
    yield RefundModel(engine)
    engine.dispose()


def test_new_sets_not_reported_status_and_history():
    new = Refund.new(
        refund_id=_text(),
        subscription_id=_text(),
        refund_created=_now(),
        refund_amount=1,
        refund_status=None,
        refund_reason=None,
        correction_file_date=None,
        id=uuid.uuid4(),
    )
    now = _now()
    assert new.get_status() == Status.NOT_REPORTED
    assert abs((new.status_t - now).total_seconds()) < 2
    history = new.get_status_history()
    assert len(history.entries) == 1
    assert history.entries[0].status == Status.NOT_REPORTED
    assert abs((history.entries[0].t - now).total_seconds()) < 2


def test_create_from_refund_and_fetch_by_refund_id(model):
    refund = make_fake_refund()
    model.create_from_refund(refund)
    result = model.fetch_one_by_refund_id(refund.refund_id)
    assert result == refund
    assert len(result.get_status_history().entries) == 1


def test_fetch_by_refund_id_missing_raises(model):
    model.create_from_refund(make_fake_refund())
    with pytest.raises(NotFoundError):
        model.fetch_one_by_refund_id("nope")


def test_update_refund(model):
    original = make_fake_refund()
    model.create_from_refund(original)
    replacement = make_fake_refund()
    replacement.refund_id = original.refund_id
    replacement.id = original.id
    model.update_refund(replacement)
    result = model.fetch_one_by_refund_id(original.refund_id)
    assert result == replacement


def test_update_refund_missing_raises(model):
    with pytest.raises(NotFoundError):
        model.update_refund(make_fake_refund())


def test_fetch_all_by_status(model):
    refund_1 = make_fake_refund()
    model.create_from_refund(refund_1)
    refund_2 = make_fake_refund()
    refund_2.update_status(Status.REPORTED)
    model.create_from_refund(refund_2)
    refund_3 = make_fake_refund()
    model.create_from_refund(refund_3)
    # A missing status time keeps a refund out of the result.
    refund_4 = make_fake_refund()
    refund_4.status_t = None
    model.create_from_refund(refund_4)

    assert len(model.fetch_all()) == 4

    not_reported = model.fetch_all_by_status(Status.NOT_REPORTED)
    assert len(not_reported) == 2
    assert refund_1 in not_reported
    assert refund_3 in not_reported

    reported = model.fetch_all_by_status(Status.REPORTED)
    assert len(reported) == 1
    assert refund_2 in reported


def test_get_reported_date_range(model):
    refund_1 = make_fake_refund()
    refund_1.update_status(Status.NOT_REPORTED)
    refund_1.status_t = refund_1.status_t - timedelta(hours=100)
    refund_2 = make_fake_refund()
    refund_2.update_status(Status.REPORTED)
    refund_3 = make_fake_refund()
    refund_3.update_status(Status.REPORTED)
    refund_3.status_t = refund_3.status_t - timedelta(hours=10)
    refund_4 = make_fake_refund()
    refund_4.update_status(Status.NOT_REPORTED)
    refund_4.status_t = refund_4.status_t + timedelta(hours=100)
    for refund in (refund_1, refund_2, refund_3, refund_4):
        model.create_from_refund(refund)

    assert len(model.fetch_all()) == 4
    result = model.get_reported_date_range()
    assert int(result.max.timestamp()) == int(refund_2.status_t.timestamp())
    assert int(result.min.timestamp()) == int(refund_3.status_t.timestamp())


def test_get_reported_date_range_empty(model):
    model.create_from_refund(make_fake_refund())
    result = model.get_reported_date_range()
    assert result.min is None and result.max is None


def test_fetch_by_correction_file_day(model):
    today = date(2022, 2, 3)
    another_day = date(2021, 11, 1)
    refund_1 = make_fake_refund()
    refund_1.correction_file_date = today
    refund_2 = make_fake_refund()
    refund_2.correction_file_date = another_day
    refund_3 = make_fake_refund()
    refund_3.correction_file_date = today
    refund_4 = make_fake_refund()
    refund_4.correction_file_date = None
    for refund in (refund_1, refund_2, refund_3, refund_4):
        model.create_from_refund(refund)

    assert len(model.fetch_all()) == 4
    result = model.fetch_by_correction_file_day(today)
    assert len(result) == 2
    assert refund_1 in result
    assert refund_3 in result


def test_update_refund_status(model):
    refund = make_fake_refund()
    model.create_from_refund(refund)
    assert len(refund.get_status_history().entries) == 1

    model.update_refund_status(refund.refund_id, Status.CJ_RECEIVED)
    result = model.fetch_one_by_refund_id(refund.refund_id)
    assert result.get_status() == Status.CJ_RECEIVED
    history = result.get_status_history()
    assert len(history.entries) == 2
    assert history.entries[1].status == Status.CJ_RECEIVED
    assert abs((history.entries[1].t - _now()).total_seconds()) < 5

    model.update_refund_status(refund.refund_id, Status.REPORTED)
    result = model.fetch_one_by_refund_id(refund.refund_id)
    assert result.get_status() == Status.REPORTED
    history = result.get_status_history()
    assert len(history.entries) == 3
    assert history.entries[2].status == Status.REPORTED
    assert abs((history.entries[2].t - _now()).total_seconds()) < 5


def test_update_refund_status_missing_raises(model):
    with pytest.raises(NotFoundError):
        model.update_refund_status("nope", Status.REPORTED)


def test_equality_ignores_subsecond_differences():
    refund = make_fake_refund()
    other = Refund(
        id=refund.id,
        refund_id=refund.refund_id,
        subscription_id=refund.subscription_id,
        refund_created=refund.refund_created,
        refund_amount=refund.refund_amount,
        refund_status=refund.refund_status,
        refund_reason=refund.refund_reason,
        status=refund.status,
        status_t=None,
    )
    assert refund != other
    other.status_t = refund.status_t
    assert refund == other