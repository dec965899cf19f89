"""Search over a catalog snapshot.

Operations are matched by case-insensitive substring over their operationId,
summary, description and tags. Schemas are ranked by fuzzy similarity of
their name and description and gated by SCHEMA_MATCH_THRESHOLD.
"""

from difflib import SequenceMatcher

from api_catalog.catalog.builder import CatalogSnapshot, iter_operations
from api_catalog.parser.base import CatalogEntry, OperationResult, SchemaMatch, SpecUri, UriType

SCHEMA_MATCH_THRESHOLD = 0.7
WINDOW_WEIGHT = 0.9


def _scope(snapshot: CatalogSnapshot, spec_id: str | None) -> list[CatalogEntry]:
    # An empty spec id means every spec, as when it is omitted.
    if not spec_id:
        return list(snapshot.catalog)
    entry = snapshot.entry(spec_id)
    return [entry] if entry is not None else []


def operation_uri(spec_id: str, operation: dict) -> str:
    return str(SpecUri(spec_id=spec_id, type=UriType.OPERATION, identifier=str(operation.get("operationId"))))


def search_operations(snapshot: CatalogSnapshot, query: str, spec_id: str | None = None) -> list[OperationResult]:
    needle = query.casefold()
    results = []
    for entry in _scope(snapshot, spec_id):
        document = snapshot.specs.get(entry.spec_id)
        if not document:
            continue
        for path, method, operation in iter_operations(document):
            fields = [operation.get("operationId"), operation.get("summary"), operation.get("description")]
            fields.extend(operation.get("tags") or [])
            corpus = " ".join(str(f) for f in fields if f).casefold()
            if needle in corpus:
                results.append(
                    OperationResult(
                        path=path,
                        method=method,
                        operation=operation,
                        spec_id=entry.spec_id,
                        uri=operation_uri(entry.spec_id, operation),
                    )
                )
    return results


def _ratio(query: str, text: str) -> float:
    return SequenceMatcher(None, query.casefold(), text.casefold()).ratio()


def similarity(query: str, text: str) -> float:
    """Case-insensitive similarity in [0, 1].

    Besides the whole text, every query-length window of the text is tried,
    so a short query can score well against a long description. A window
    match counts for at most WINDOW_WEIGHT; only a whole-text match scores 1.0.
    """
    query, text = query.casefold(), text.casefold()
    if not query or not text:
        return 0.0
    best = _ratio(query, text)
    width = len(query)
    if len(text) > width:
        matcher = SequenceMatcher(None, query)
        window_best = 0.0
        for start in range(len(text) - width + 1):
            matcher.set_seq2(text[start:start + width])
            window_best = max(window_best, matcher.ratio())
            if window_best == 1.0:
                break
        best = max(best, window_best * WINDOW_WEIGHT)
    return best


def search_schemas(snapshot: CatalogSnapshot, query: str, spec_id: str | None = None) -> list[SchemaMatch]:
    scored = []
    for entry in _scope(snapshot, spec_id):
        for schema in entry.schemas:
            score = similarity(query, schema.name)
            if schema.description:
                score = max(score, similarity(query, schema.description))
            if score >= SCHEMA_MATCH_THRESHOLD:
                match = SchemaMatch(name=schema.name, description=schema.description, spec_id=entry.spec_id)
                scored.append(((score, _ratio(query, schema.name)), match))
    # equal scores fall back to whole-name closeness, then catalog order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [match for _, match in scored]
