"""Fixed instructions and grounding turns sent to the vendors."""

from __future__ import annotations

from typing import Iterable

ASSISTANT_NAME = "Editorial RAG Assistant"
VECTOR_STORE_NAME = "Editorial Knowledge Base"

CITATION_RULES = """IMPORTANT RULES:
1. Use the provided documents to answer questions accurately
2. ALWAYS cite your sources using the format: [Source: document_name]
3. If information comes from multiple documents, cite all relevant sources
4. If you cannot find information in the documents, clearly state that
5. Match the company's style and tone based on the documents"""

ASSISTANT_INSTRUCTIONS = f"""You are a helpful expert editorial assistant.

{CITATION_RULES}"""

COMPLETION_SYSTEM_PROMPT = """You are a helpful expert editorial assistant.

IMPORTANT RULES:
1. Answer questions accurately and helpfully
2. If you reference information, cite it clearly
3. Be concise but thorough"""

GROUNDING_INTRO = (
    "Here is the knowledge base containing all relevant documents for our session:"
)
GROUNDING_OUTRO = "Please use these documents to answer my future questions."
GROUNDING_ACK = (
    "Understood. I have processed the knowledge base and am ready to assist you."
)

NO_DOCUMENTS = "none"


def grounding_instruction(document_names: Iterable[str]) -> str:
    """System instruction naming the documents the model may draw from."""

    names = ", ".join(name for name in document_names if name)
    return (
        "You are a helpful expert editorial assistant. You have access to the "
        f"following knowledge base documents: {names or NO_DOCUMENTS}.\n\n"
        f"{CITATION_RULES}"
    )


__all__ = [
    "ASSISTANT_INSTRUCTIONS",
    "ASSISTANT_NAME",
    "COMPLETION_SYSTEM_PROMPT",
    "GROUNDING_ACK",
    "GROUNDING_INTRO",
    "GROUNDING_OUTRO",
    "NO_DOCUMENTS",
    "VECTOR_STORE_NAME",
    "grounding_instruction",
]
