# civic_search/services/local_index.py
import logging
import re
from typing import Dict, Iterable, List, Optional

from civic_search.interfaces.sources import LocalIndexInterface
from civic_search.models.internal import Document, IndexedDocument
from civic_search.services.document_scorer import document_session_number, query_terms
from civic_search.utils.session_numbers import extract_session_number

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+", re.UNICODE)


class InMemoryDocumentIndex(LocalIndexInterface):
    """Term-overlap document index kept in process memory.

    Stands in for the vector store in tests and small deployments; similarity
    is the share of query terms a document contains, lifted when the query
    names the document's council session.
    """

    def __init__(self, documents: Optional[Iterable[Document]] = None):
        self._documents: Dict[str, Document] = {}
        for document in documents or []:
            self.add(document)

    def add(self, document: Document):
        self._documents[document.id] = document

    def remove(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    def __len__(self) -> int:
        return len(self._documents)

    def similarity(self, document: Document, text: str) -> float:
        terms = query_terms(text)
        if not terms:
            return 0.0

        haystack = " ".join([document.title, " ".join(document.keywords), document.content]).lower()
        tokens = set(_WORD.findall(haystack))
        matched = sum(1 for term in terms if term in tokens or (len(term) >= 4 and term in haystack))
        overlap = matched / len(terms)

        wanted = extract_session_number(text)
        if wanted is not None and wanted == document_session_number(document):
            return 0.5 + 0.5 * overlap
        return overlap

    async def query(self, text: str, limit: int = 10) -> List[IndexedDocument]:
        hits = []
        for document in self._documents.values():
            score = self.similarity(document, text)
            if score > 0:
                hits.append(IndexedDocument(document=document, similarity=score))

        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        logger.debug(f"Local index matched {len(hits)} documents for: {text[:30]}...")
        return hits[:limit]
