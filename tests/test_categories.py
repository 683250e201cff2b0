"""Unit tests for catalog/categories.py -- CategoryDirectory CRUD and uniqueness."""

import pytest

from catalog.models import Category, Product
from core.errors import ConflictError, NotFoundError, ValidationError


def _add(categories, name):
    category = Category(name=name)
    assert categories.create(category) is True
    return category


def test_create_assigns_id_and_trims(categories):
    category = _add(categories, "  Peripherals  ")
    assert category.id is not None
    assert category.name == "Peripherals"
    assert category.created_at
    assert categories.get_by_id(category.id).name == "Peripherals"


def test_list_is_ordered_by_name(categories):
    for name in ("Monitors", "Audio", "Keyboards"):
        _add(categories, name)
    assert [c.name for c in categories.list_categories()] == ["Audio", "Keyboards", "Monitors"]


def test_duplicate_name_ignores_case(categories):
    _add(categories, "Audio")
    with pytest.raises(ConflictError, match="The category already exists"):
        categories.create(Category(name="AUDIO"))
    assert len(categories.list_categories()) == 1


@pytest.mark.parametrize("name", ["", "   ", "ab", "x" * 51, None])
def test_invalid_names_are_rejected(categories, name):
    with pytest.raises(ValidationError):
        categories.create(Category(name=name))


def test_exists_helpers(categories):
    category = _add(categories, "Storage")
    assert categories.exists_by_id(category.id)
    assert not categories.exists_by_id(9999)
    assert categories.exists_by_name("storage")
    assert not categories.exists_by_name("storage", exclude_id=category.id)


def test_update_renames(categories):
    category = _add(categories, "Storage")
    assert categories.update(Category(id=category.id, name="Drives")) is True
    assert categories.get_by_id(category.id).name == "Drives"


def test_update_may_keep_its_own_name(categories):
    category = _add(categories, "Storage")
    assert categories.update(Category(id=category.id, name="STORAGE")) is True


def test_update_conflicts_with_other_category(categories):
    _add(categories, "Audio")
    video = _add(categories, "Video")
    with pytest.raises(ConflictError):
        categories.update(Category(id=video.id, name="audio"))


def test_update_unknown_category(categories):
    with pytest.raises(NotFoundError):
        categories.update(Category(id=404, name="Nothing"))


def test_delete(categories):
    category = _add(categories, "Temporary")
    assert categories.delete(category) is True
    assert categories.get_by_id(category.id) is None


def test_delete_unknown_category(categories):
    with pytest.raises(NotFoundError):
        categories.delete(Category(id=404, name="Nothing"))


def test_delete_with_products_is_a_conflict(categories, products):
    category = _add(categories, "Peripherals")
    assert products.create(Product(name="Mouse", category_id=category.id, price=10, stock=1))
    with pytest.raises(ConflictError, match="still has products"):
        categories.delete(category)
    assert categories.exists_by_id(category.id)


def test_store_failure_on_create_returns_false(categories, failing_writes):
    failing_writes(categories)
    category = Category(name="Audio")
    assert categories.create(category) is False
    assert category.id is None
    assert categories.list_categories() == []


def test_store_failure_on_update_and_delete_returns_false(categories, failing_writes):
    category = _add(categories, "Audio")
    failing_writes(categories)
    assert categories.update(Category(id=category.id, name="Speakers")) is False
    assert categories.delete(category) is False
    assert categories.get_by_id(category.id).name == "Audio"
