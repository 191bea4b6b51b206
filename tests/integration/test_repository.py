"""Integration tests for the SQLite local store."""

from __future__ import annotations

from decimal import Decimal

import pytest

from expensesync.exceptions import DuplicateError, NotFoundError
from expensesync.models import CategoryDTO, CategoryInsert, TransactionDTO, TransactionInsert
from expensesync.repository import Repository


@pytest.mark.sit
def test_schema_seeds_transaction_types(empty_repository: Repository) -> None:
    names = [record.name for record in empty_repository.list_transaction_types()]
    assert names == ["income", "expense"]

    # Re-running is idempotent.
    empty_repository.initialize_schema()
    assert len(empty_repository.list_transaction_types()) == 2


@pytest.mark.sit
def test_list_fixture_data(repository: Repository) -> None:
    categories = repository.list_categories()
    transactions = repository.list_transactions()

    assert [c.name for c in categories] == ["Food", "Salary"]
    assert [t.description for t in transactions] == ["Coffee", "Groceries", "February pay"]
    assert transactions[0].amount == Decimal("4.2")
    assert transactions[0].category_ids == (categories[0].id, categories[1].id)
    assert repository.count_categories() == 2
    assert repository.count_transactions() == 3


@pytest.mark.sit
def test_category_crud(repository: Repository) -> None:
    created = repository.insert_category(CategoryDTO(name="Travel", color="#0000ff"))
    assert repository.get_category(created.id) == created

    updated = repository.update_category(created.id, CategoryDTO(name="Trips", color="#00f"))
    assert repository.get_category(created.id).name == "Trips"
    assert updated.color == "#00f"

    repository.delete_category(created.id)
    with pytest.raises(NotFoundError):
        repository.get_category(created.id)


@pytest.mark.sit
def test_duplicate_category_names(repository: Repository) -> None:
    with pytest.raises(DuplicateError) as excinfo:
        repository.insert_category(CategoryDTO(name="food"))
    assert excinfo.value.details["name"] == "food"

    salary = repository.list_categories()[1]
    with pytest.raises(DuplicateError):
        repository.update_category(salary.id, CategoryDTO(name="FOOD"))
    # Renaming to its own name is allowed.
    repository.update_category(salary.id, CategoryDTO(name="Salary", color="#111111"))


@pytest.mark.sit
def test_delete_category_removes_links(repository: Repository) -> None:
    food = repository.list_categories()[0]
    repository.delete_category(food.id)

    links = repository.list_transaction_category_links()
    assert all(link.category_id != food.id for link in links)
    assert repository.count_transactions() == 3


@pytest.mark.sit
def test_transaction_crud(repository: Repository) -> None:
    food = repository.list_categories()[0]
    created = repository.insert_transaction(
        TransactionDTO(
            type="expense",
            amount=Decimal("9.99"),
            date="2026-02-18",
            description="Lunch",
            category_ids=(food.id,),
        )
    )

    fetched = repository.get_transaction(created.id)
    assert fetched.amount == Decimal("9.99")
    assert fetched.category_ids == (food.id,)

    repository.delete_transaction(created.id)
    with pytest.raises(NotFoundError):
        repository.get_transaction(created.id)
    assert all(link.transaction_id != created.id for link in repository.list_transaction_category_links())


@pytest.mark.sit
def test_insert_transaction_with_unknown_category_rolls_back(repository: Repository) -> None:
    with pytest.raises(NotFoundError):
        repository.insert_transaction(
            TransactionDTO(type="expense", amount="1", date="2026-02-18", category_ids=(999,))
        )
    assert repository.count_transactions() == 3
    assert not repository.in_transaction


@pytest.mark.sit
def test_transaction_block_rolls_back(repository: Repository) -> None:
    with pytest.raises(RuntimeError):
        with repository.transaction():
            repository.clear_all_data()
            assert repository.count_categories() == 0
            raise RuntimeError("abort")

    assert repository.count_categories() == 2
    assert repository.count_transactions() == 3


@pytest.mark.sit
def test_bulk_replace(repository: Repository) -> None:
    expense = repository.ensure_transaction_type("EXPENSE")
    with repository.transaction():
        repository.clear_all_data()
        categories = repository.insert_categories([CategoryInsert("Rent", "#123456")])
        ids = repository.insert_transactions(
            [TransactionInsert(expense.id, Decimal("1200"), "2026-03-01", "March rent")]
        )
        repository.insert_links([(ids[0], categories[0].id)])

    transactions = repository.list_transactions()
    assert [t.description for t in transactions] == ["March rent"]
    assert transactions[0].category_ids == (categories[0].id,)
    assert len(repository.list_transaction_types()) == 2


@pytest.mark.sit
def test_operations_require_connection(empty_db_path) -> None:
    repository = Repository(empty_db_path)
    with pytest.raises(RuntimeError):
        repository.list_categories()
