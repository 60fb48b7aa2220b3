"""
Tolerant readers for provider responses.

Responses arrive either as SDK objects (snake_case attributes, pydantic
models) or as plain JSON payloads (camelCase keys). Every reader here
normalizes to a mapping first and tries the known shapes in order, failing
closed (empty result) instead of raising on the first mismatch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from answering.errors import MalformedResponseError
from answering.models import Chunk, DocumentSource, WebSource

logger = structlog.get_logger(__name__)

SNIPPET_LIMIT = 200
DEFAULT_WEB_TITLE = "Untitled"


@dataclass(frozen=True)
class TextResult:
    text: str


@dataclass(frozen=True)
class EmptyResult:
    finish_reason: Optional[str] = None


ParsedText = Union[TextResult, EmptyResult]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def as_mapping(obj: Any) -> Dict[str, Any]:
    """Best-effort conversion of an SDK object or payload into a dict."""
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    for converter in ("model_dump", "to_dict"):
        if not hasattr(obj, converter):
            continue
        try:
            converted = getattr(obj, converter)()
        except Exception:
            logger.debug("Response conversion failed", converter=converter, type=type(obj).__name__)
            continue
        if isinstance(converted, Mapping):
            return dict(converted)
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    return {}


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from ``obj`` as snake_case or camelCase, key or attribute."""
    mapping = obj if isinstance(obj, Mapping) else as_mapping(obj)
    for key in (name, _camel(name)):
        value = mapping.get(key)
        if value is not None:
            return value
    return default


def _list_field(obj: Any, name: str) -> List[Any]:
    value = get_field(obj, name)
    return list(value) if isinstance(value, (list, tuple)) else []


def _first_candidate(response: Any) -> Dict[str, Any]:
    candidates = _list_field(response, "candidates")
    return as_mapping(candidates[0]) if candidates else {}


def parse_text(response: Any) -> ParsedText:
    """Pull the answer text out of a response, or report why there is none."""
    direct = None if isinstance(response, Mapping) else getattr(response, "text", None)
    if not isinstance(direct, str):
        direct = get_field(response, "text")
    if isinstance(direct, str) and direct.strip():
        return TextResult(direct)

    candidate = _first_candidate(response)
    content = as_mapping(get_field(candidate, "content"))
    texts = [get_field(part, "text") for part in _list_field(content, "parts")]
    joined = "".join(t for t in texts if isinstance(t, str))
    if joined.strip():
        return TextResult(joined)

    reason = get_field(candidate, "finish_reason")
    return EmptyResult(finish_reason=str(reason) if reason is not None else None)


def extract_text(response: Any) -> str:
    """Like :func:`parse_text` but raises when nothing usable came back."""
    parsed = parse_text(response)
    if isinstance(parsed, EmptyResult):
        raise MalformedResponseError(f"Response contained no text (finish_reason={parsed.finish_reason})")
    return parsed.text


def grounding_metadata(response: Any) -> Dict[str, Any]:
    return as_mapping(get_field(_first_candidate(response), "grounding_metadata"))


def _last_segment(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return path.rstrip("/").rsplit("/", 1)[-1] or None


def _describe_chunk(context: Mapping[str, Any]) -> str:
    return (
        get_field(context, "title")
        or _last_segment(get_field(context, "document_name"))
        or get_field(context, "uri")
        or "retrieved-context"
    )


def _chunk_confidences(metadata: Mapping[str, Any]) -> Dict[int, float]:
    """Highest support confidence reported for each grounding chunk index."""
    best: Dict[int, float] = {}
    for support in _list_field(metadata, "grounding_supports"):
        indices = _list_field(support, "grounding_chunk_indices")
        scores = _list_field(support, "confidence_scores")
        for index, score in zip(indices, scores):
            try:
                score = float(score)
            except (TypeError, ValueError):
                continue
            if 0.0 <= score <= 1.0 and score > best.get(index, -1.0):
                best[index] = score
    return best


def _page(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def extract_citations(response: Any) -> List[DocumentSource]:
    """Group retrieved chunks by the file they came from.

    Files keep first-seen order and chunks keep citation order. Page spans
    and confidences are carried over only when the provider reports them.
    """
    metadata = grounding_metadata(response)
    confidences = _chunk_confidences(metadata)
    by_file: Dict[str, DocumentSource] = {}

    for index, grounding_chunk in enumerate(_list_field(metadata, "grounding_chunks")):
        context = as_mapping(get_field(grounding_chunk, "retrieved_context"))
        if not context:
            continue

        file_name = _describe_chunk(context)
        rag_chunk = as_mapping(get_field(context, "rag_chunk"))
        page_span = as_mapping(get_field(rag_chunk, "page_span"))
        text = get_field(rag_chunk, "text") or get_field(context, "text") or ""
        chunk_id = _last_segment(get_field(context, "document_name")) or f"{file_name}#{index}"

        chunk = Chunk(
            chunk_id=chunk_id,
            text=text[:SNIPPET_LIMIT],
            page_start=_page(get_field(page_span, "first_page")),
            page_end=_page(get_field(page_span, "last_page")),
            confidence=confidences.get(index),
        )

        source = by_file.get(file_name)
        if source is None:
            source = by_file[file_name] = DocumentSource(file_name=file_name, document_id=chunk.chunk_id)
        source.chunks.append(chunk)

    return list(by_file.values())


def extract_web_sources(response: Any) -> List[WebSource]:
    """Web citations from grounding metadata, deduplicated by URL."""
    metadata = grounding_metadata(response)
    snippets: Dict[int, str] = {}
    for support in _list_field(metadata, "grounding_supports"):
        segment_text = get_field(get_field(support, "segment", {}), "text")
        if not segment_text:
            continue
        for index in _list_field(support, "grounding_chunk_indices"):
            snippets.setdefault(index, segment_text)

    seen = set()
    sources: List[WebSource] = []
    for index, grounding_chunk in enumerate(_list_field(metadata, "grounding_chunks")):
        web = as_mapping(get_field(grounding_chunk, "web"))
        url = get_field(web, "uri")
        if not url or url in seen:
            continue
        seen.add(url)
        sources.append(
            WebSource(
                title=get_field(web, "title") or DEFAULT_WEB_TITLE,
                url=url,
                snippet=get_field(web, "snippet") or snippets.get(index),
            )
        )
    return sources


def grounding_segments(response: Any) -> List[Dict[str, Any]]:
    """Answer segments with the chunk indices backing them, for diagnostics."""
    segments = []
    for support in _list_field(grounding_metadata(response), "grounding_supports"):
        segment = as_mapping(get_field(support, "segment"))
        segments.append(
            {
                "text": (get_field(segment, "text") or "")[:80],
                "chunks": _list_field(support, "grounding_chunk_indices"),
            }
        )
    return segments


def cached_token_count(response: Any) -> Optional[int]:
    usage = get_field(response, "usage_metadata")
    count = get_field(usage, "cached_content_token_count") if usage is not None else None
    return int(count) if count is not None else None


def operation_done(operation: Any) -> bool:
    return bool(get_field(operation, "done", False))


def operation_error(operation: Any) -> Optional[str]:
    error = get_field(operation, "error")
    if not error:
        return None
    if isinstance(error, str):
        return error
    return get_field(error, "message") or str(error)


_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def first_json_object(text: str) -> Optional[str]:
    """The outermost ``{...}`` span of a model reply, if any."""
    match = _JSON_OBJECT.search(text or "")
    return match.group(0) if match else None
