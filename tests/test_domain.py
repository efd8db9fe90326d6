import uuid

from booky.domain import (
    AccountingFact,
    BalanceTransaction,
    ExpandedCase,
    IngestResult,
    ObjectSnapshot,
    TaxCase,
    TaxCaseObject,
    merge_ingest,
)


def test_merge_ingest_concatenates_in_order():
    first = IngestResult(
        snapshots=[ObjectSnapshot("charge", "ch_1")],
        balance_txs=[BalanceTransaction(id="txn_1")],
        facts=[AccountingFact(source_group_id="charge:ch_1:sale")],
    )
    second = IngestResult(
        snapshots=[ObjectSnapshot("refund", "re_1")],
        tax_cases=[TaxCase(root_object_type="charge", root_object_id="ch_1")],
        tax_case_objects=[TaxCaseObject(object_type="charge", object_id="ch_1", object_role="root")],
    )
    merged = merge_ingest(first, second)
    assert [s.object_id for s in merged.snapshots] == ["ch_1", "re_1"]
    assert [bt.id for bt in merged.balance_txs] == ["txn_1"]
    assert [c.root_object_id for c in merged.tax_cases] == ["ch_1"]
    assert len(merged.tax_case_objects) == 1
    assert [f.source_group_id for f in merged.facts] == ["charge:ch_1:sale"]


def test_merge_ingest_does_not_mutate_parts():
    part = IngestResult(snapshots=[ObjectSnapshot("charge", "ch_1")])
    merged = merge_ingest(part, part)
    assert len(merged.snapshots) == 2
    assert len(part.snapshots) == 1


def test_merge_ingest_of_nothing_is_empty():
    assert merge_ingest() == IngestResult()


def test_record_defaults():
    case = TaxCase()
    assert case.id == uuid.UUID(int=0)
    assert case.stripe_tax_amount_minor is None
    bt = BalanceTransaction()
    assert bt.amount_sek_ore is None
    expanded = ExpandedCase(case=case)
    assert expanded.objects == []
    assert expanded.manual_evidence == []