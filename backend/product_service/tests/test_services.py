# colorshop/backend/product_service/tests/test_services.py

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from colorshop.errors import (
    AlreadyExistsError,
    AuthError,
    NotFoundError,
    StorageError,
    StorageUnavailableError,
    ValidationError,
)
from colorshop.models import Admin
from colorshop.schemas import ProductPatch
from colorshop.services import (
    AdminService,
    ImageCleanup,
    ProductService,
    parse_create,
    parse_patch,
    utcnow,
)
from colorshop.storage import ImageUpload

PNG = ImageUpload(data=b"\x89PNG....", filename="swatch.png", content_type="image/png")


@pytest.fixture
def service(db_session, image_storage):
    return ProductService(db_session, image_storage)


@pytest.fixture
def ocean_blue(service):
    return service.create(parse_create({"name": "Ocean Blue", "brand": "Acme", "price": 12.5}))


# --- Create ---


def test_create_defaults(ocean_blue):
    assert ocean_blue.id is not None
    assert ocean_blue.quantity == 0
    assert ocean_blue.image_url is None
    assert ocean_blue.image_handle is None
    assert ocean_blue.last_updated is not None


def test_create_with_external_image_url(service):
    product = service.create(
        parse_create(
            {
                "name": "Moss",
                "brand": "Acme",
                "price": 3,
                "imageUrl": "https://cdn.example.com/moss.png",
            }
        )
    )
    assert product.image_url == "https://cdn.example.com/moss.png"
    assert product.image_handle is None


def test_parse_create_requires_name_brand_price():
    with pytest.raises(ValidationError) as excinfo:
        parse_create({"name": "Only a name"})
    assert "brand" in excinfo.value.message
    assert "price" in excinfo.value.message


def test_create_rolls_back_upload_when_store_fails(service, image_storage):
    data = parse_create({"name": "Doomed", "brand": "Acme", "price": 1})
    with patch.object(
        service.db, "commit", side_effect=OperationalError("INSERT", {}, Exception("down"))
    ):
        with pytest.raises(StorageError):
            service.create(data, PNG)
    assert image_storage.deletes == image_storage.uploads


def test_create_with_image_and_no_storage(db_session):
    service = ProductService(db_session, storage=None)
    data = parse_create({"name": "Ocean Blue", "brand": "Acme", "price": 12.5})
    with pytest.raises(StorageUnavailableError):
        service.create(data, PNG)


# --- Update ---


def test_update_leaves_omitted_fields_untouched(service, ocean_blue):
    before = {
        column: getattr(ocean_blue, column)
        for column in ("name", "brand", "color", "price", "category", "description")
    }

    outcome = service.update(ocean_blue.id, ProductPatch(quantity=5))

    assert outcome.product.quantity == 5
    for column, value in before.items():
        assert getattr(outcome.product, column) == value
    assert outcome.image_cleanup is ImageCleanup.NOT_NEEDED


def test_update_advances_last_updated(service, ocean_blue, db_session):
    future = utcnow() + timedelta(days=1)
    ocean_blue.last_updated = future
    db_session.commit()

    # Even if the clock is behind the stored value, lastUpdated never moves back
    outcome = service.update(ocean_blue.id, ProductPatch(color="Teal"))
    assert outcome.product.last_updated >= future


def test_update_explicit_empty_patch_only_touches_timestamp(service, ocean_blue):
    previous = ocean_blue.last_updated
    outcome = service.update(ocean_blue.id, parse_patch({}))
    assert outcome.product.name == "Ocean Blue"
    assert outcome.product.last_updated >= previous


def test_update_missing_product(service):
    with pytest.raises(NotFoundError):
        service.update(424242, ProductPatch(quantity=1))


def test_update_rejects_null_required_field():
    with pytest.raises(ValidationError):
        parse_patch({"price": None})


def test_update_with_upload_deletes_old_image_once(service, image_storage):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    old_handle = product.image_handle

    outcome = service.update(product.id, ProductPatch(), PNG)

    assert image_storage.deletes == [old_handle]
    assert outcome.product.image_handle == image_storage.uploads[-1]
    assert outcome.image_cleanup is ImageCleanup.DELETED


def test_update_upload_failure_leaves_record_untouched(service, image_storage):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    old_handle = product.image_handle
    image_storage.fail_uploads = True

    with pytest.raises(StorageError):
        service.update(product.id, ProductPatch(quantity=9), PNG)

    reloaded = service.get(product.id)
    assert reloaded.quantity == 0
    assert reloaded.image_handle == old_handle
    assert image_storage.deletes == []


def test_update_external_url_releases_owned_image(service, image_storage):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    old_handle = product.image_handle

    outcome = service.update(
        product.id, parse_patch({"imageUrl": "https://cdn.example.com/coral.png"})
    )

    assert outcome.product.image_url == "https://cdn.example.com/coral.png"
    assert outcome.product.image_handle is None
    assert image_storage.deletes == [old_handle]


def test_update_echoing_current_url_keeps_owned_image(service, image_storage):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    handle = product.image_handle

    outcome = service.update(
        product.id, parse_patch({"imageUrl": product.image_url, "quantity": 2})
    )

    assert outcome.product.image_handle == handle
    assert image_storage.deletes == []


# --- Replace image ---


def test_replace_image_checks_existence_before_upload(service):
    with pytest.raises(NotFoundError):
        service.replace_image(424242, None)


def test_replace_image_requires_upload(service, ocean_blue):
    with pytest.raises(ValidationError):
        service.replace_image(ocean_blue.id, None)


def test_replace_image_on_product_without_image(service, ocean_blue, image_storage):
    outcome = service.replace_image(ocean_blue.id, PNG)
    assert outcome.product.image_handle == image_storage.uploads[0]
    assert outcome.image_cleanup is ImageCleanup.NOT_NEEDED
    assert image_storage.deletes == []


def test_replace_image_rejects_oversized_file(service, ocean_blue, image_storage):
    huge = ImageUpload(data=b"x" * (5 * 1024 * 1024 + 1), filename="big.png", content_type="image/png")
    with pytest.raises(ValidationError):
        service.replace_image(ocean_blue.id, huge)
    assert image_storage.uploads == []


# --- Delete ---


def test_delete_attempts_exactly_one_image_delete_even_on_failure(
    service, image_storage
):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    handle = product.image_handle
    product_id = product.id
    image_storage.fail_deletes = True

    outcome = service.delete(product_id)

    assert outcome.cleanup_failed
    assert image_storage.deletes == [handle]
    with pytest.raises(NotFoundError):
        service.get(product_id)


def test_delete_without_storage_still_removes_record(db_session, image_storage):
    product = ProductService(db_session, image_storage).create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    product_id = product.id

    outcome = ProductService(db_session, storage=None).delete(product_id)

    assert outcome.image_cleanup is ImageCleanup.FAILED
    with pytest.raises(NotFoundError):
        ProductService(db_session).get(product_id)


def test_delete_missing_product(service):
    with pytest.raises(NotFoundError):
        service.delete(424242)


def test_delete_keeps_image_when_record_removal_fails(service, image_storage):
    product = service.create(
        parse_create({"name": "Coral", "brand": "Acme", "price": 4}), PNG
    )
    product_id = product.id
    handle = product.image_handle

    with patch.object(
        service.db, "commit", side_effect=OperationalError("DELETE", {}, Exception("down"))
    ):
        with pytest.raises(StorageError):
            service.delete(product_id)

    # The record still points at its image, so the image must survive
    assert image_storage.deletes == []
    assert handle in image_storage.blobs
    assert service.get(product_id).image_handle == handle


# --- Search / list ---


def test_search_matches_any_field(service):
    for fields in (
        {"name": "Brick", "brand": "Redwood", "price": 1},
        {"name": "Sky", "brand": "Acme", "color": "Blue", "price": 1},
        {"name": "Poppy", "brand": "Acme", "color": "Bright Red", "price": 1},
    ):
        service.create(parse_create(fields))

    names = [p.name for p in service.search("red")]

    assert names == ["Brick", "Poppy"]


def test_search_underscore_is_literal(service):
    service.create(parse_create({"name": "Ab", "brand": "Acme", "price": 1}))
    assert service.search("_") == []


def test_list_all_orders_by_last_updated(service, db_session):
    old = service.create(parse_create({"name": "Old", "brand": "Acme", "price": 1}))
    new = service.create(parse_create({"name": "New", "brand": "Acme", "price": 1}))
    old.last_updated = datetime(2000, 1, 1)
    db_session.commit()

    assert [p.id for p in service.list_all()] == [new.id, old.id]


# --- Admin ---


def test_bootstrap_is_idempotent(db_session):
    service = AdminService(db_session)
    service.bootstrap()

    with pytest.raises(AlreadyExistsError):
        service.bootstrap()

    assert db_session.query(Admin).count() == 1


def test_verify_login(db_session):
    service = AdminService(db_session)
    service.bootstrap()

    assert service.verify_login("admin", "admin123") == "admin"


def test_verify_login_same_error_for_unknown_user_and_bad_password(db_session):
    service = AdminService(db_session)
    service.bootstrap()

    with pytest.raises(AuthError) as bad_password:
        service.verify_login("admin", "wrong")
    with pytest.raises(AuthError) as unknown_user:
        service.verify_login("nobody", "admin123")

    assert bad_password.value.message == unknown_user.value.message == "Invalid credentials"
