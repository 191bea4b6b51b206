from __future__ import annotations

from decimal import Decimal

import pytest

from expensesync.config import ValidationRules
from expensesync.exceptions import DataIntegrityError, ValidationError
from expensesync.models import (
    CategoryRecord,
    TransactionCategoryLink,
    TransactionRecord,
    TransactionTypeRecord,
)
from expensesync.transformer import (
    categories_to_cloud,
    create_category_lookup_maps,
    create_transaction_type_maps,
    get_data_summary,
    parse_downloaded_data,
    prepare_downloaded_data_for_local,
    prepare_local_data_for_sync,
    transactions_to_cloud,
    validate_downloaded_data,
)

TYPES = [TransactionTypeRecord(1, "income"), TransactionTypeRecord(2, "expense")]
TYPE_MAP = {record.id: record for record in TYPES}
CATEGORIES = [CategoryRecord(10, "Food", "#ff0000"), CategoryRecord(11, "Salary", "#00ff00")]
ID_TO_NAME = {10: "Food", 11: "Salary"}


def _transaction(**overrides) -> TransactionRecord:
    values = {
        "id": 1,
        "type_id": 2,
        "amount": Decimal("25.50"),
        "date": "2026-02-16",
        "description": "Groceries",
    }
    values.update(overrides)
    return TransactionRecord(**values)


def test_categories_to_cloud() -> None:
    converted = categories_to_cloud(
        [CategoryRecord(1, "  Food ", "#ff0000"), CategoryRecord(2, "Misc", "")]
    )

    assert [c.name for c in converted] == ["Food", "Misc"]
    assert converted[1].color == "#000000"
    assert converted[0].created_at == converted[0].updated_at


def test_categories_to_cloud_reports_index() -> None:
    with pytest.raises(DataIntegrityError) as excinfo:
        categories_to_cloud([CategoryRecord(1, "Food", "#fff"), CategoryRecord(2, " ", "#fff")])
    assert excinfo.value.details["index"] == 1


def test_categories_to_cloud_rejects_long_name() -> None:
    with pytest.raises(DataIntegrityError):
        categories_to_cloud([CategoryRecord(1, "x" * 101, "#fff")])


def test_categories_to_cloud_requires_list() -> None:
    with pytest.raises(ValidationError):
        categories_to_cloud("Food")


def test_transactions_to_cloud_resolves_categories_and_type() -> None:
    links = [
        TransactionCategoryLink(1, 1, 10),
        TransactionCategoryLink(2, 1, 99),
        TransactionCategoryLink(3, 2, 11),
    ]
    converted = transactions_to_cloud(
        [_transaction(), _transaction(id=2, type_id=1, amount=Decimal("3000"), description=None)],
        links,
        ID_TO_NAME,
        TYPE_MAP,
    )

    assert converted[0].type == "expense"
    assert converted[0].categories == ("Food",)
    assert converted[1].type == "income"
    assert converted[1].categories == ("Salary",)
    assert converted[1].description == ""


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": Decimal("-1")},
        {"amount": "abc"},
        {"amount": Decimal("1000000000")},
        {"type_id": 9},
        {"description": "x" * 501},
        {"date": "2026-02-30"},
    ],
)
def test_transactions_to_cloud_rejects_bad_records(overrides) -> None:
    with pytest.raises(DataIntegrityError) as excinfo:
        transactions_to_cloud(
            [_transaction(id=5), _transaction(id=6, **overrides)], [], ID_TO_NAME, TYPE_MAP
        )
    assert excinfo.value.details["index"] == 1


def test_prepare_local_data_for_sync() -> None:
    data = prepare_local_data_for_sync(
        CATEGORIES,
        [_transaction()],
        [TransactionCategoryLink(1, 1, 10)],
        TYPE_MAP,
        ID_TO_NAME,
    )

    payload = data.to_dict()
    assert [c["name"] for c in payload["categories"]] == ["Food", "Salary"]
    assert payload["transactions"][0]["amount"] == 25.5
    assert payload["transactions"][0]["categories"] == ["Food"]


def test_prepare_local_data_enforces_count_limits() -> None:
    rules = ValidationRules(max_categories_per_sync=1)
    with pytest.raises(ValidationError) as excinfo:
        prepare_local_data_for_sync(CATEGORIES, [], [], TYPE_MAP, ID_TO_NAME, rules)
    assert excinfo.value.details == {"count": 2, "limit": 1}


def test_prepare_local_data_enforces_size_limit() -> None:
    rules = ValidationRules(max_sync_payload_size=50)
    with pytest.raises(ValidationError, match="Payload too large"):
        prepare_local_data_for_sync(CATEGORIES, [_transaction()], [], TYPE_MAP, ID_TO_NAME, rules)


def test_validate_downloaded_data(sample_download_payload) -> None:
    assert validate_downloaded_data(sample_download_payload)
    assert validate_downloaded_data({"categories": [], "transactions": []})


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"categories": []},
        {"categories": [{"color": "#fff"}], "transactions": []},
        {"categories": [{"name": ""}], "transactions": []},
        {"categories": [{"name": "  "}], "transactions": []},
        {"categories": [], "transactions": [{"amount": "1", "type": "expense", "categories": []}]},
        {"categories": [], "transactions": [{"amount": True, "type": "expense", "categories": []}]},
        {"categories": [], "transactions": [{"amount": 1, "type": "transfer", "categories": []}]},
        {"categories": [], "transactions": [{"amount": 1, "type": "expense"}]},
    ],
)
def test_validate_downloaded_data_rejects_bad_shapes(payload) -> None:
    assert validate_downloaded_data(payload) is False


def test_parse_downloaded_data_rejects_invalid() -> None:
    with pytest.raises(ValidationError):
        parse_downloaded_data({"categories": "nope", "transactions": []})


def test_prepare_downloaded_data_for_local(sample_download_payload) -> None:
    downloaded = parse_downloaded_data(sample_download_payload)
    inserts = prepare_downloaded_data_for_local(
        downloaded, income_type_id=1, expense_type_id=2, category_name_to_id={"Rent": 7, "Bonus": 8}
    )

    assert [(c.name, c.color) for c in inserts.category_inserts] == [
        ("Rent", "#123456"),
        ("Bonus", "#000000"),
    ]
    assert [t.type_id for t in inserts.transaction_inserts] == [2, 1]
    assert inserts.transaction_inserts[1].amount == Decimal("500.25")
    # "Missing" has no local id and is dropped from the links.
    assert [(link.transaction_index, link.category_ids) for link in inserts.category_links] == [
        (0, (7,)),
        (1, (8,)),
    ]


def test_prepare_downloaded_data_requires_type_ids(sample_download_payload) -> None:
    downloaded = parse_downloaded_data(sample_download_payload)
    with pytest.raises(ValueError):
        prepare_downloaded_data_for_local(downloaded, None, 2, {})


def test_lookup_maps() -> None:
    id_to_name, name_to_id = create_category_lookup_maps(CATEGORIES)
    assert id_to_name == ID_TO_NAME
    assert name_to_id == {"Food": 10, "Salary": 11}

    type_map, income, expense = create_transaction_type_maps(TYPES)
    assert type_map == TYPE_MAP
    assert income.id == 1
    assert expense.id == 2


def test_get_data_summary(sample_download_payload) -> None:
    summary = get_data_summary(parse_downloaded_data(sample_download_payload))
    assert summary == {
        "categories_count": 2,
        "transactions_count": 2,
        "income_total": "500.25",
        "expense_total": "1200",
    }


def _without_timestamps(items) -> list[dict]:
    return [
        {key: value for key, value in item.to_dict().items() if key not in ("created_at", "updated_at")}
        for item in items
    ]


def test_categories_to_cloud_is_stable() -> None:
    first = categories_to_cloud(CATEGORIES)
    second = categories_to_cloud(CATEGORIES)
    assert _without_timestamps(first) == _without_timestamps(second)


def test_transactions_to_cloud_keeps_every_valid_record() -> None:
    records = [
        _transaction(id=index, amount=Decimal(amount))
        for index, amount in enumerate(["0", "0.01", "12.345", "999999999.99"], start=1)
    ]
    converted = transactions_to_cloud(records, [], ID_TO_NAME, TYPE_MAP)
    assert [t.amount for t in converted] == [r.amount for r in records]


def test_transactions_to_cloud_rejects_nan() -> None:
    with pytest.raises(DataIntegrityError):
        transactions_to_cloud([_transaction(amount=Decimal("NaN"))], [], ID_TO_NAME, TYPE_MAP)


def test_download_shape_examples() -> None:
    assert validate_downloaded_data(
        {
            "categories": [{"name": "Food"}],
            "transactions": [{"amount": 5, "type": "expense", "categories": []}],
        }
    )
    assert not validate_downloaded_data({"categories": [{}], "transactions": []})


def test_round_trip_preserves_names_and_amounts() -> None:
    local = prepare_local_data_for_sync(
        CATEGORIES,
        [_transaction(amount=Decimal("19.99")), _transaction(id=2, type_id=1, amount=Decimal("0.1"))],
        [TransactionCategoryLink(1, 1, 10)],
        TYPE_MAP,
        ID_TO_NAME,
    )
    downloaded = parse_downloaded_data(local.to_dict())
    inserts = prepare_downloaded_data_for_local(downloaded, 1, 2, {"Food": 10, "Salary": 11})

    assert [c.name for c in inserts.category_inserts] == ["Food", "Salary"]
    assert [t.amount for t in inserts.transaction_inserts] == [Decimal("19.99"), Decimal("0.1")]
    assert [t.type_id for t in inserts.transaction_inserts] == [2, 1]


def test_downloaded_category_references_are_trimmed() -> None:
    downloaded = parse_downloaded_data(
        {
            "categories": [{"name": "Food"}],
            "transactions": [{"amount": 4, "type": "expense", "categories": [" Food "]}],
        }
    )
    inserts = prepare_downloaded_data_for_local(downloaded, 1, 2, {"Food": 10})

    assert downloaded.transactions[0].categories == ("Food",)
    assert inserts.category_links[0].category_ids == (10,)
