"""Turn a user's business records into retrievable text chunks.

Every product, sale and debt is rendered as a short natural-language
paragraph holding all of its salient fields, then split into overlapping
chunks small enough to embed. Each chunk keeps a pointer back to its record.
"""

from __future__ import annotations

from datetime import datetime

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ledger_chat.core.config import settings
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.currency import format_amount
from ledger_chat.domain.models import (
    Debt,
    DebtType,
    Document,
    DocumentMetadata,
    Product,
    RecordType,
    Sale,
    UserRecordSet,
)

logger = get_logger(__name__)

# Paragraph, line, sentence, word, character
SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

NOT_INFORMED = "Not informed"


def _date(value: datetime | None) -> str:
    return value.date().isoformat() if value else NOT_INFORMED


class DocumentBuilder:
    """Render records with fixed templates and chunk them."""

    def __init__(
        self,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        currency: str | None = None,
    ) -> None:
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.currency = currency or settings.currency
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            separators=SEPARATORS,
            keep_separator=False,
        )

    def _money(self, value: float) -> str:
        return format_amount(value, self.currency)

    def render_product(self, product: Product) -> str:
        initial = product.initial_quantity if product.initial_quantity is not None else NOT_INFORMED
        return "\n".join(
            [
                f"Product: {product.name}",
                f"ID: {product.id}",
                f"Acquisition value: {self._money(product.acquisition_value)}",
                f"Quantity in stock: {product.quantity}",
                f"Initial quantity: {initial}",
                f"Created on: {_date(product.created_at)}",
                "",
                f"The product {product.name} is registered with {product.quantity} units available.",
            ]
        )

    def render_sale(self, sale: Sale) -> str:
        if sale.is_loss:
            loss = f"Loss: Yes - Reason: {sale.loss_reason or NOT_INFORMED}"
        else:
            loss = "Loss: No"
        return "\n".join(
            [
                f"Sale: {sale.product_name}",
                f"ID: {sale.id}",
                f"Quantity sold: {sale.quantity_sold}",
                f"Sale value: {self._money(sale.sale_value)}",
                f"Profit: {self._money(sale.profit)}",
                loss,
                f"Sale date: {_date(sale.created_at)}",
            ]
        )

    def render_debt(self, debt: Debt) -> str:
        direction = "Receivable" if debt.type == DebtType.RECEIVABLE else "Payable"
        lines = [
            f"Debt: {debt.description}",
            f"ID: {debt.id}",
            f"Type: {direction}",
            f"Total amount: {self._money(debt.amount)}",
            f"Amount paid: {self._money(debt.amount_paid)}",
            f"Outstanding: {self._money(debt.outstanding)}",
            f"Status: {debt.status.value}",
        ]
        if debt.contact_name:
            lines.append(f"Contact: {debt.contact_name}")
        if debt.due_date:
            lines.append(f"Due date: {_date(debt.due_date)}")
        lines.append(f"Created on: {_date(debt.created_at)}")
        return "\n".join(lines)

    def split(self, text: str) -> list[str]:
        return [chunk for chunk in self._splitter.split_text(text) if chunk.strip()]

    def _chunk(self, text: str, metadata: DocumentMetadata) -> list[Document]:
        return [
            Document(content=chunk, metadata=metadata.model_copy(update={"chunk_index": index}))
            for index, chunk in enumerate(self.split(text))
        ]

    def build_documents(self, record_set: UserRecordSet) -> list[Document]:
        """Build the documents for one user, products first, then sales, then debts."""
        documents: list[Document] = []
        user_id = record_set.user_id

        for product in record_set.products:
            documents.extend(
                self._chunk(
                    self.render_product(product),
                    DocumentMetadata(
                        type=RecordType.PRODUCT, record_id=product.id, name=product.name, user_id=user_id
                    ),
                )
            )

        for sale in record_set.sales:
            documents.extend(
                self._chunk(
                    self.render_sale(sale),
                    DocumentMetadata(
                        type=RecordType.SALE, record_id=sale.id, name=sale.product_name, user_id=user_id
                    ),
                )
            )

        for debt in record_set.debts:
            documents.extend(
                self._chunk(
                    self.render_debt(debt),
                    DocumentMetadata(
                        type=RecordType.DEBT, record_id=debt.id, name=debt.description, user_id=user_id
                    ),
                )
            )

        logger.debug(
            "Built documents from records",
            user_id=user_id,
            records=record_set.record_count(),
            documents=len(documents),
        )
        return documents
