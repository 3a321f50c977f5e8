"""In-memory BM25 keyword index with exact, prefix and fuzzy term matching."""

import math
import re
import time
from collections import Counter
from typing import Callable

from shared.embeddings.scheduling import iter_batches, yield_control
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import VectorDocument
from shared.models.search import KeywordSearchOptions, KeywordSearchResult
from shared.models.stats import KeywordIndexStats

TOKEN_RE = re.compile(r"\w+", re.UNICODE)

K1 = 1.5
B = 0.75

# expansions score lower than an exact hit
PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45


def tokenize(text: str) -> list[str]:
    return [t.lower() for t in TOKEN_RE.findall(text)]


def _bm25_idf(n_docs: int, df: int) -> float:
    return math.log(1 + (n_docs - df + 0.5) / (df + 0.5)) if df > 0 else 0.0


def _bm25_score(tf: int, dl: int, avgdl: float, idf: float, k1: float = K1, b: float = B) -> float:
    denom = tf + k1 * (1 - b + b * (dl / (avgdl if avgdl > 0 else 1.0)))
    return idf * (tf * (k1 + 1)) / (denom if denom > 0 else 1e-9)


def bounded_levenshtein(a: str, b: str, max_distance: int) -> int | None:
    """Edit distance between a and b, or None if it exceeds max_distance."""
    if abs(len(a) - len(b)) > max_distance:
        return None
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        if min(current) > max_distance:
            return None
        previous = current
    return previous[-1] if previous[-1] <= max_distance else None


class KeywordIndex:
    """BM25 inverted index over lower-cased word tokens.

    Documents are keyed by their store id; adding an id that is already
    indexed replaces the previous entry.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self._docs: dict[int, VectorDocument] = {}
        self._term_freqs: dict[int, Counter] = {}
        self._postings: dict[str, dict[int, int]] = {}
        self._content_chars = 0
        self._total_len = 0
        self.is_built = False

    ##########################################
    ############### MUTATION #################
    ##########################################

    def add_document(self, doc_id: int, content: str, document: VectorDocument) -> None:
        if doc_id in self._docs:
            self.remove_document(doc_id)
        freqs = Counter(tokenize(content))
        self._docs[doc_id] = document
        self._term_freqs[doc_id] = freqs
        self._content_chars += len(content)
        self._total_len += sum(freqs.values())
        for term, tf in freqs.items():
            self._postings.setdefault(term, {})[doc_id] = tf

    def remove_document(self, doc_id: int) -> None:
        freqs = self._term_freqs.pop(doc_id, None)
        if freqs is None:
            return
        doc = self._docs.pop(doc_id)
        self._content_chars -= len(doc.content)
        self._total_len -= sum(freqs.values())
        for term in freqs:
            posting = self._postings.get(term)
            if posting is None:
                continue
            posting.pop(doc_id, None)
            if not posting:
                del self._postings[term]

    def clear(self) -> None:
        self._docs.clear()
        self._term_freqs.clear()
        self._postings.clear()
        self._content_chars = 0
        self._total_len = 0
        self.is_built = False

    async def build_from_documents(
        self,
        documents: list[VectorDocument],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> None:
        """Replace the index content with the given documents, in batches with yields."""
        started = time.perf_counter()
        self.clear()
        done = 0
        for batch in iter_batches(documents):
            for doc in batch:
                if doc.id is None:
                    self.logging.warning("Skipping document without id while building keyword index.")
                    continue
                self.add_document(doc.id, doc.content, doc)
            done += len(batch)
            if on_progress:
                on_progress(done, len(documents))
            await yield_control()
        self.is_built = True
        self.logging.info(
            "Keyword index built with %d documents and %d terms in %.2fs.",
            len(self._docs), len(self._postings), time.perf_counter() - started,
        )

    ##########################################
    ################# SEARCH #################
    ##########################################

    def _expand_term(self, term: str, fuzzy: float, prefix: bool) -> dict[str, float]:
        """Map a query term to the index terms it matches and their weights."""
        expansions: dict[str, float] = {}
        if term in self._postings:
            expansions[term] = 1.0
        max_distance = round(fuzzy * len(term)) if fuzzy < 1 else int(fuzzy)
        if not prefix and max_distance <= 0:
            return expansions
        for candidate in self._postings:
            if candidate == term:
                continue
            weight = 0.0
            if prefix and candidate.startswith(term):
                weight = PREFIX_WEIGHT
            if max_distance > 0:
                distance = bounded_levenshtein(term, candidate, max_distance)
                if distance is not None:
                    weight = max(weight, FUZZY_WEIGHT * len(term) / (len(term) + distance))
            if weight > 0:
                expansions[candidate] = weight
        return expansions

    def search(self, query: str, options: KeywordSearchOptions | None = None) -> list[KeywordSearchResult]:
        """Rank indexed documents against the query.

        Args:
            query (str): Free text; tokenised like the documents.
            options (KeywordSearchOptions | None): limit, fuzzy, prefix and combine_with.

        Returns:
            list[KeywordSearchResult]: Best first. Empty for a blank query or no match.
        """
        options = options or KeywordSearchOptions()
        query_terms = list(dict.fromkeys(tokenize(query)))
        if not query_terms or not self._docs:
            return []

        n_docs = len(self._docs)
        avgdl = self._total_len / n_docs
        scores: dict[int, float] = {}
        matched: dict[int, set[str]] = {}
        hit_query_terms: dict[int, set[str]] = {}

        for query_term in query_terms:
            for term, weight in self._expand_term(query_term, options.fuzzy, options.prefix).items():
                posting = self._postings[term]
                idf = _bm25_idf(n_docs, len(posting))
                for doc_id, tf in posting.items():
                    dl = sum(self._term_freqs[doc_id].values())
                    scores[doc_id] = scores.get(doc_id, 0.0) + weight * _bm25_score(tf, dl, avgdl, idf)
                    matched.setdefault(doc_id, set()).add(term)
                    hit_query_terms.setdefault(doc_id, set()).add(query_term)

        if options.combine_with == "AND":
            required = len(query_terms)
            scores = {doc_id: s for doc_id, s in scores.items() if len(hit_query_terms[doc_id]) == required}

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:options.limit]
        return [
            KeywordSearchResult(
                id=doc_id,
                score=score,
                document=self._docs[doc_id],
                matched_terms=sorted(matched[doc_id]),
            )
            for doc_id, score in ranked
        ]

    ##########################################
    ################ GETTER ##################
    ##########################################

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, doc_id: int) -> bool:
        return doc_id in self._docs

    def get_stats(self) -> KeywordIndexStats:
        postings = sum(len(p) for p in self._postings.values())
        # rough estimate: raw text plus 16 bytes per posting entry
        size_bytes = self._content_chars * 2 + postings * 16
        return KeywordIndexStats(
            document_count=len(self._docs),
            term_count=len(self._postings),
            is_built=self.is_built,
            memory_size_mb=round(size_bytes / (1024 * 1024), 4),
        )
