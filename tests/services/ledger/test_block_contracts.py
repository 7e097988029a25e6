from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ledger_projection.ledger.contracts import (
    AssetResult,
    Block,
    ContentCardCreate,
    ContentCardUpdate,
    GenericOperationResult,
    LedgerContractError,
    ObjectIdResult,
    PermissionCreateMany,
    UnknownOperation,
    UnknownResult,
    VoidResult,
    decode_operation,
    decode_result,
    parse_timestamp,
)


def _block_payload() -> dict[str, object]:
    return {
        "block_num": 1200,
        "timestamp": "2024-03-01T12:00:00",
        "transactions": [{"transaction_id": "a1b2"}, "c3d4"],
        "applied_operations": [
            {
                "op": [
                    41,
                    {
                        "subject_account": "1.2.17",
                        "hash": "h1",
                        "url": "ipfs://card",
                        "type": "image",
                        "description": "first card",
                        "content_key": "k1",
                        "storage_data": "s1",
                    },
                ],
                "result": [1, "1.23.4"],
                "trx_in_block": 0,
                "op_in_trx": 0,
            },
            {
                "op": [
                    64,
                    {
                        "subject_account": "1.2.17",
                        "permissions": [
                            {"operator_account": "1.2.20", "permission_type": "content_card_read"},
                            {"operator_account": "1.2.21", "permission_type": "content_card_read", "object_id": "1.23.4"},
                        ],
                    },
                ],
                "result": [3, {"new_objects": ["1.24.0", "1.24.1"]}],
                "trx_in_block": 1,
            },
        ],
    }


def test_block_from_payload_decodes_operations_and_results() -> None:
    block = Block.from_payload(_block_payload())
    assert block.number == 1200
    assert block.timestamp == datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert [trx.transaction_id for trx in block.transactions] == ["a1b2", "c3d4"]

    first = block.applied_operations[0]
    assert isinstance(first.operation, ContentCardCreate)
    assert first.operation.subject_account == "1.2.17"
    assert first.operation.storage_data == "s1"
    assert first.result == ObjectIdResult(object_id="1.23.4")

    batch = block.applied_operations[1]
    assert isinstance(batch.operation, PermissionCreateMany)
    assert [grant.operator_account for grant in batch.operation.permissions] == ["1.2.20", "1.2.21"]
    assert batch.operation.permissions[0].object_id is None
    assert batch.operation.permissions[1].object_id == "1.23.4"
    assert isinstance(batch.result, GenericOperationResult)
    assert batch.result.new_objects == ("1.24.0", "1.24.1")
    assert batch.trx_in_block == 1


def test_transaction_id_for_out_of_range_index_is_empty() -> None:
    block = Block.from_payload(_block_payload())
    assert block.transaction_id_for(1) == "c3d4"
    assert block.transaction_id_for(2) == ""
    assert block.transaction_id_for(-1) == ""


def test_unknown_operation_and_result_tags_are_preserved() -> None:
    operation = decode_operation([0, {"from": "1.2.1", "to": "1.2.2"}])
    assert operation == UnknownOperation(tag=0, body={"from": "1.2.1", "to": "1.2.2"})
    result = decode_result([5, {"impacted_accounts": []}])
    assert isinstance(result, UnknownResult)
    assert result.tag == 5


def test_result_variants() -> None:
    assert decode_result(None) == VoidResult()
    assert decode_result([0, {}]) == VoidResult()
    assert decode_result([2, {"amount": 100, "asset_id": "1.3.0"}]) == AssetResult(amount=100, asset_id="1.3.0")
    generic = decode_result([3, {"new_objects": ["1.24.9"], "updated_objects": ["1.2.17"]}])
    assert generic == GenericOperationResult(new_objects=("1.24.9",), updated_objects=("1.2.17",))


def test_new_objects_keep_delivered_order() -> None:
    result = decode_result([3, {"new_objects": ["1.24.3", "1.24.1", "1.24.2"]}])
    assert isinstance(result, GenericOperationResult)
    assert result.new_objects == ("1.24.3", "1.24.1", "1.24.2")


def test_update_operation_content_id_is_optional() -> None:
    operation = decode_operation([42, {"subject_account": "1.2.17", "hash": "h2"}])
    assert isinstance(operation, ContentCardUpdate)
    assert operation.content_id is None
    assert operation.url == ""


@pytest.mark.parametrize(
    "payload",
    [
        {"timestamp": "2024-03-01T12:00:00"},
        {"block_num": 1, "timestamp": ""},
        {"block_num": "x", "timestamp": "2024-03-01T12:00:00"},
        {"block_num": 1, "timestamp": "2024-03-01T12:00:00", "applied_operations": [{"op": "bad"}]},
        {"block_num": 1, "timestamp": "2024-03-01T12:00:00", "applied_operations": [{"op": [43, {}]}]},
    ],
)
def test_invalid_block_payloads_raise(payload: dict[str, object]) -> None:
    with pytest.raises(LedgerContractError):
        Block.from_payload(payload)


def test_parse_timestamp_forms() -> None:
    expected = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-01T12:00:00Z") == expected
    assert parse_timestamp("2024-03-01T14:00:00+02:00") == expected
    assert parse_timestamp(int(expected.timestamp())) == expected
