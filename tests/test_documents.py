import pytest

from ledger_chat.domain.currency import format_amount, get_currency
from ledger_chat.domain.models import RecordType, UserRecordSet
from ledger_chat.services.documents import DocumentBuilder

from .conftest import make_debt, make_product, make_sale


def test_render_product_includes_salient_fields(document_builder):
    text = document_builder.render_product(make_product("p1", "Red Shirt", quantity=5, value=20))

    assert "Product: Red Shirt" in text
    assert "ID: p1" in text
    assert "Acquisition value: MT 20.00" in text
    assert "Quantity in stock: 5" in text
    assert "Created on: 2025-01-01" in text
    assert "The product Red Shirt is registered with 5 units available." in text


def test_render_sale_marks_losses(document_builder):
    sale = make_sale("s1", "Red Shirt", quantity=2, value=70)
    assert "Loss: No" in document_builder.render_sale(sale)

    loss = sale.model_copy(update={"is_loss": True, "loss_reason": "damaged"})
    text = document_builder.render_sale(loss)
    assert "Loss: Yes - Reason: damaged" in text
    assert "Quantity sold: 2" in text
    assert "Sale value: MT 70.00" in text


def test_render_debt_shows_outstanding_amount(document_builder):
    text = document_builder.render_debt(make_debt("d1", "Invoice 42", amount=150, paid=50))

    assert "Type: Receivable" in text
    assert "Outstanding: MT 100.00" in text
    assert "Status: PARTIALLY_PAID" in text
    assert "Contact: Maria" in text
    assert "Due date" not in text


def test_build_documents_orders_products_sales_debts(document_builder):
    record_set = UserRecordSet(
        user_id="u1",
        products=[make_product("p1", "Red Shirt", 5)],
        sales=[make_sale("s1", "Red Shirt")],
        debts=[make_debt("d1", "Invoice 42")],
    )

    documents = document_builder.build_documents(record_set)

    assert [doc.metadata.type for doc in documents] == [RecordType.PRODUCT, RecordType.SALE, RecordType.DEBT]
    assert [doc.metadata.record_id for doc in documents] == ["p1", "s1", "d1"]
    assert all(doc.metadata.user_id == "u1" for doc in documents)


def test_empty_record_set_yields_no_documents(document_builder):
    assert document_builder.build_documents(UserRecordSet(user_id="u1")) == []


def test_long_records_are_split_into_bounded_overlapping_chunks():
    builder = DocumentBuilder(chunk_size=120, chunk_overlap=40, currency="USD")
    product = make_product("p1", " ".join(f"word{i}" for i in range(80)), quantity=3)

    documents = builder.build_documents(UserRecordSet(user_id="u1", products=[product]))

    assert len(documents) > 1
    assert all(len(doc.content) <= 120 for doc in documents)
    assert [doc.metadata.chunk_index for doc in documents] == list(range(len(documents)))
    # Consecutive chunks share text
    first_tail = documents[0].content.split()[-1]
    assert first_tail in documents[1].content


def test_overlap_must_be_smaller_than_chunk_size():
    with pytest.raises(ValueError):
        DocumentBuilder(chunk_size=100, chunk_overlap=100)


def test_currency_formatting():
    assert format_amount(1234.5, "BRL") == "R$ 1,234.50"
    assert format_amount(3, "usd") == "$ 3.00"
    assert get_currency("EUR").symbol == "EUR"
