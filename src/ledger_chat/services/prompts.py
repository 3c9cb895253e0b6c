"""Prompt templates for the financial assistant."""

import textwrap

from ledger_chat.core.config import settings
from ledger_chat.domain.currency import get_currency
from ledger_chat.domain.models import Document

IMAGE_ANALYSIS_INSTRUCTION = (
    "Analyze this image and describe what you see, especially anything related to "
    "products, sales, stock or the business. Be specific and detailed."
)

NO_HISTORY = "(no previous messages)"

NO_CONTEXT = "NO RELEVANT RECORDS WERE FOUND IN THE USER'S DATA."


class PromptBuilder:
    """Assemble the single prompt sent to the text model for a chat turn."""

    _PROMPT_TEMPLATE = textwrap.dedent("""
    You are an assistant specialised in helping small businesses manage their products, sales, debts and finances.

    Previous conversation:
    {conversation_history}

    Relevant information from the user's data:
    {context}

    Current question: {question}
    {image_section}
    Instructions:
    1. Answer clearly and objectively.
    2. Use the user's specific data whenever it is relevant.
    3. If the question is about products, sales or debts, cite the specific records.
    4. If there is no relevant data for the question, say so explicitly. Never invent records or figures.
    5. Be helpful and professional.
    6. Express monetary values in {currency_name} ({currency_code}, symbol {currency_symbol}).

    Answer:
    """).strip()

    def __init__(self, currency: str | None = None) -> None:
        self.currency = get_currency(currency or settings.currency)

    @staticmethod
    def format_context(documents: list[Document]) -> str:
        if not documents:
            return NO_CONTEXT
        return "\n\n".join(doc.content for doc in documents)

    def build(
        self,
        question: str,
        conversation_history: str,
        documents: list[Document],
        image_analysis: str = "",
    ) -> str:
        image_section = f"\nImage analysis: {image_analysis}\n" if image_analysis else ""
        return self._PROMPT_TEMPLATE.format(
            conversation_history=conversation_history or NO_HISTORY,
            context=self.format_context(documents),
            question=question,
            image_section=image_section,
            currency_name=self.currency.name,
            currency_code=self.currency.code,
            currency_symbol=self.currency.symbol,
        )
