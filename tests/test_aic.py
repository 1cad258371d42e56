import random
import string
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError

from cjms.models.aic import AIC, AICModel
from cjms.models.database import NotFoundError, create_schema
from cjms.settings import Secret, Settings

_ASCII = string.digits + string.ascii_letters + "!\"#$%&'()*+,-./:;<=>?@"


def random_ascii_string():
    return "".join(random.choice(_ASCII) for _ in range(random.randint(8, 89)))


def make_settings(days=2):
    return Settings(
        aic_expiration_days=days,
        authentication="_",
        cj_api_access_token=Secret("token"),
        cj_cid="_",
        cj_sftp_user="_",
        cj_signature="_",
        cj_subid="_",
        cj_type="_",
        database_url=Secret("_"),
        environment="_",
        gcp_project="_",
        host="_",
        log_level="_",
        port=1111,
        sentry_dsn=Secret("_"),
        sentry_environment="_",
        statsd_host="_",
        statsd_port=2222,
    )


def make_fake_aic():
    now = datetime.now(timezone.utc)
    return AIC(
        id=uuid.uuid4(),
        flow_id=random_ascii_string(),
        cj_event_value=random_ascii_string(),
        created=now,
        expires=now + timedelta(days=10),
    )


@pytest.fixture
def model(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'db.sqlite'}")
    create_schema(engine)
    yield AICModel(engine)
    engine.dispose()


def test_aic_model_fetch_one_by_ids(model):
    created = model.create(random_ascii_string(), random_ascii_string(), make_settings())
    assert model.fetch_one_by_id(created.id) == created
    assert model.fetch_one_by_flow_id(created.flow_id) == created


def test_aic_model_fetch_one_by_uuid_if_not_available(model):
    model.create(random_ascii_string(), random_ascii_string(), make_settings())
    with pytest.raises(NotFoundError):
        model.fetch_one_by_id(uuid.uuid4())
    with pytest.raises(NotFoundError):
        model.fetch_one_by_flow_id("bad_id")


def test_aic_model_create_by_aic(model):
    aic = make_fake_aic()
    model.create_from_aic(aic)
    assert model.fetch_one_by_id(aic.id) == aic


def test_aic_archive_model_fetch_one_by_ids(model):
    created = model.create_archive_from_aic(make_fake_aic())
    assert model.fetch_one_by_id_from_archive(created.id) == created
    assert model.fetch_one_by_flow_id_from_archive(created.flow_id) == created


def test_aic_archive_model_fetch_one_by_uuid_if_not_available(model):
    model.create_from_aic(make_fake_aic())
    with pytest.raises(NotFoundError):
        model.fetch_one_by_id_from_archive(uuid.uuid4())
    with pytest.raises(NotFoundError):
        model.fetch_one_by_flow_id_from_archive("bad_id")


def test_aic_archive_creates_and_deletes(model):
    aic = make_fake_aic()
    model.create_from_aic(aic)
    model.archive_aic(aic)
    assert model.fetch_one_by_id_from_archive(aic.id) == aic
    with pytest.raises(NotFoundError):
        model.fetch_one_by_id(aic.id)


def test_aic_archive_does_not_delete_if_cannot_insert(model):
    aic = make_fake_aic()
    blocking_archive_entry = make_fake_aic()
    blocking_archive_entry.flow_id = aic.flow_id
    model.create_from_aic(aic)
    model.create_archive_from_aic(blocking_archive_entry)
    with pytest.raises(IntegrityError):
        model.archive_aic(aic)
    assert model.fetch_one_by_id(aic.id) == aic
    with pytest.raises(NotFoundError):
        model.fetch_one_by_id_from_archive(aic.id)


def test_get_all_expired(model):
    now = datetime.now(timezone.utc)
    aic_1 = make_fake_aic()
    aic_1.expires = now - timedelta(seconds=5)
    aic_2 = make_fake_aic()
    aic_2.expires = now + timedelta(seconds=5)
    aic_3 = make_fake_aic()
    aic_3.expires = now - timedelta(seconds=5)
    for aic in (aic_1, aic_2, aic_3):
        model.create_from_aic(aic)
    result = model.fetch_expired()
    assert len(result) == 2
    assert aic_1 in result
    assert aic_3 in result


def test_create_expires_after_configured_days(model):
    settings = make_settings(days=30)
    created = model.create("event", "flow", settings)
    saved = model.fetch_one()
    assert saved == created
    assert (saved.expires - saved.created).days == 30
    assert abs((saved.created - datetime.now(timezone.utc)).total_seconds()) < 60


def test_fetch_one_on_empty_table_raises(model):
    with pytest.raises(NotFoundError):
        model.fetch_one()


def test_create_with_duplicate_flow_id_raises(model):
    model.create("event", "flow", make_settings())
    with pytest.raises(IntegrityError):
        model.create("other", "flow", make_settings())


def test_update_flow_id_keeps_expiry(model):
    orig = model.create("event", "flow", make_settings())
    updated = model.update_flow_id(orig.id, "flowextra")
    assert updated.id == orig.id
    assert updated.flow_id == "flowextra"
    assert updated.cj_event_value == "event"
    assert updated.expires == orig.expires
    assert model.fetch_one_by_id(orig.id) == updated


def test_update_flow_id_and_cj_event_value_restarts_clock(model):
    settings = make_settings(days=5)
    orig = model.create_from_aic(
        AIC(
            id=uuid.uuid4(),
            cj_event_value="event",
            flow_id="flow",
            created=datetime.now(timezone.utc) - timedelta(days=3),
            expires=datetime.now(timezone.utc) + timedelta(days=2),
        )
    )
    updated = model.update_flow_id_and_cj_event_value(orig.id, "eventextra", "flowextra", settings)
    assert updated.id == orig.id
    assert updated.cj_event_value == "eventextra"
    assert updated.flow_id == "flowextra"
    assert updated.expires > orig.expires
    assert (updated.expires - updated.created).days == 5


def test_update_missing_aic_raises(model):
    with pytest.raises(NotFoundError):
        model.update_flow_id(uuid.uuid4(), "flow")
    with pytest.raises(NotFoundError):
        model.update_flow_id_and_cj_event_value(uuid.uuid4(), "event", "flow", make_settings())


def test_equality_ignores_subsecond_precision():
    aic = make_fake_aic()
    aic.created = aic.created.replace(microsecond=0)
    other = AIC(
        id=aic.id,
        cj_event_value=aic.cj_event_value,
        flow_id=aic.flow_id,
        created=aic.created + timedelta(microseconds=500),
        expires=aic.expires,
    )
    assert aic == other
    other.flow_id = "different"
    assert not aic == other