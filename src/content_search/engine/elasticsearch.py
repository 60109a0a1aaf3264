"""Elasticsearch adapter over its REST API.

Translates the common query/filter/sort/facet vocabulary into the query DSL
and hits back into SearchResults. Talks HTTP through httpx; no client SDK.
"""

import json
import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx

from content_search.errors import EngineError, EngineUnavailableError, IndexNotFoundError
from content_search.models.engine import (
    BulkOperation,
    BulkResponse,
    EngineResponse,
    IndexDocument,
    IndexStatus,
    ReindexStatus,
)
from content_search.models.search import (
    ContentType,
    FacetCount,
    ProcessedQuery,
    ResultSource,
    SearchFacets,
    SearchFilters,
    SearchResult,
    SortField,
    Suggestion,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ["title^3", "description^2", "content", "tags^2"]

HIGHLIGHT = {
    "fields": {
        "title": {"fragment_size": 150, "number_of_fragments": 1},
        "description": {"fragment_size": 200, "number_of_fragments": 2},
        "content": {"fragment_size": 200, "number_of_fragments": 3},
    },
    "pre_tags": ["<mark>"],
    "post_tags": ["</mark>"],
}

# Facet name -> (document field, bucket count)
FACETS: dict[str, tuple[str, int]] = {
    "content_types": ("type", 10),
    "categories": ("categories", 20),
    "tags": ("tags", 30),
    "languages": ("language", 10),
    "courses": ("course_id", 20),
}

DEFAULT_MAPPING: dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "type": {"type": "keyword"},
        "title": {
            "type": "text",
            "fields": {
                "keyword": {"type": "keyword", "ignore_above": 256},
                "suggest": {"type": "completion"},
            },
        },
        "description": {"type": "text"},
        "content": {"type": "text"},
        "tags": {"type": "keyword"},
        "categories": {"type": "keyword"},
        "course_id": {"type": "keyword"},
        "module_id": {"type": "keyword"},
        "language": {"type": "keyword"},
        "url": {"type": "keyword", "index": False},
        "created_at": {"type": "date"},
        "updated_at": {"type": "date"},
    }
}


class ElasticsearchEngine:
    """FullTextEngine backed by an Elasticsearch cluster.

    Content lives in one index per content type, named
    ``<prefix><type>s`` (e.g. ``lms_courses``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        index_prefix: str = "lms_",
        auth: tuple[str, str] | None = None,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize with the cluster URL; pass ``http_client`` to share or mock transport."""
        self._base_url = base_url.rstrip("/")
        self.index_prefix = index_prefix
        self._auth = auth
        self._timeout = timeout
        self._http = http_client

    # -- Index naming --

    def index_name(self, type: ContentType) -> str:
        """Index holding one content type."""
        return f"{self.index_prefix}{type.value}s"

    def full_index_name(self, index: str) -> str:
        """Prefix an index name unless it already carries the prefix."""
        return index if index.startswith(self.index_prefix) else f"{self.index_prefix}{index}"

    def _content_type_from_index(self, index: str) -> ContentType:
        name = index.removeprefix(self.index_prefix)
        return ContentType.parse(name[:-1] if name.endswith("s") else name)

    def _search_indices(self, filters: SearchFilters) -> str:
        if filters.content_types:
            return ",".join(self.index_name(t) for t in filters.content_types)
        return f"{self.index_prefix}*"

    # -- HTTP --

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(auth=self._auth)
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        content: str | None = None,
        params: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> httpx.Response:
        """Send one request and map failures onto the engine error types."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {"Content-Type": "application/x-ndjson"} if content is not None else None
        try:
            resp = await self._get_client().request(
                method,
                url,
                json=body,
                content=content,
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise EngineUnavailableError(
                "Search engine request timed out", details={"method": method, "path": path}
            ) from exc
        except httpx.TransportError as exc:
            raise EngineUnavailableError(
                f"Search engine unreachable: {exc}", details={"method": method, "path": path}
            ) from exc

        if resp.status_code == 404:
            if _error_type(resp) == "index_not_found_exception":
                raise IndexNotFoundError(
                    "Index not found",
                    details={"path": path, "index": _error_index(resp)},
                )
            if allow_404:
                return resp
            raise EngineError(
                "Search engine returned 404", status_code=404, details={"path": path}
            )
        if resp.status_code >= 500:
            raise EngineUnavailableError(
                f"Search engine returned {resp.status_code}",
                details={"path": path, "status": resp.status_code, "type": _error_type(resp)},
            )
        if resp.status_code >= 400:
            raise EngineError(
                f"Search engine rejected request ({resp.status_code})",
                details={"path": path, "status": resp.status_code, "type": _error_type(resp)},
            )
        return resp

    # -- Search --

    def build_search_body(
        self, query: ProcessedQuery, *, size: int, offset: int = 0
    ) -> dict[str, Any]:
        """Query DSL for one processed query."""
        text = query.normalized_query.strip()
        must: list[dict[str, Any]]
        if text:
            must = [
                {
                    "multi_match": {
                        "query": text,
                        "fields": SEARCH_FIELDS,
                        "type": "best_fields",
                        "fuzziness": "AUTO",
                        "operator": "and",
                    }
                }
            ]
        else:
            must = [{"match_all": {}}]

        bool_query: dict[str, Any] = {"must": must, "filter": build_filters(query.filters)}
        expanded = query.expanded_query.strip()
        if expanded and expanded != text:
            # Alternatives only boost; they never widen the match set
            bool_query["should"] = [
                {"multi_match": {"query": expanded, "fields": SEARCH_FIELDS, "operator": "or"}}
            ]

        sort = build_sort(query.options.sort_by, query.options.sort_order.value)
        body: dict[str, Any] = {
            "query": {"bool": bool_query},
            "from": offset,
            "size": size,
            "sort": sort,
            "track_total_hits": True,
        }
        if "_score" not in sort[0]:
            # Field sorts leave _score and max_score null unless asked for
            body["track_scores"] = True
        if query.options.include_highlights:
            body["highlight"] = HIGHLIGHT
        if query.options.include_facets:
            body["aggs"] = {
                name: {"terms": {"field": field, "size": size_}}
                for name, (field, size_) in FACETS.items()
            }
        return body

    async def search(
        self, query: ProcessedQuery, *, size: int | None = None, offset: int = 0
    ) -> EngineResponse:
        """Run a weighted multi-field match with filters, highlights and optional facets."""
        started = time.perf_counter()
        body = self.build_search_body(query, size=size or query.options.limit, offset=offset)
        indices = self._search_indices(query.filters)
        resp = await self._request(
            "POST",
            f"{indices}/_search",
            body=body,
            params={"ignore_unavailable": "true"} if not query.filters.content_types else None,
        )
        data = resp.json()
        response = self._format_response(data)
        logger.debug(
            "Engine search %s: %d/%d hits in %.1fms (search_id=%s)",
            indices,
            len(response.results),
            response.total,
            (time.perf_counter() - started) * 1000,
            query.search_id,
        )
        return response

    def _format_response(self, data: dict[str, Any]) -> EngineResponse:
        hits = data.get("hits", {})
        raw_hits = hits.get("hits", [])
        max_score = hits.get("max_score") or max(
            (h.get("_score") or 0.0 for h in raw_hits), default=0.0
        )
        results = [self._hit_to_result(hit, max_score) for hit in raw_hits]
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        return EngineResponse(
            results=results,
            total=int(total),
            took=int(data.get("took", 0)),
            facets=format_facets(data.get("aggregations")),
        )

    def _hit_to_result(self, hit: dict[str, Any], max_score: float) -> SearchResult:
        src = hit.get("_source", {})
        raw_score = float(hit.get("_score") or 0.0)
        score = raw_score / max_score if max_score > 0 else 0.0
        content_type = (
            ContentType.parse(src["type"])
            if src.get("type")
            else self._content_type_from_index(hit.get("_index", ""))
        )
        doc_id = str(src.get("id") or hit["_id"])
        metadata: dict[str, Any] = {"index": hit.get("_index"), "raw_score": raw_score}
        if src.get("chunk_id") is not None:
            metadata["chunk_id"] = src["chunk_id"]
        result: dict[str, Any] = {
            "id": doc_id,
            "type": content_type,
            "title": src.get("title") or "Untitled",
            "description": src.get("description") or "",
            "content": src.get("content"),
            "highlights": format_highlights(hit.get("highlight")),
            "score": min(score, 1.0),
            "relevance_score": min(score, 1.0),
            "source": ResultSource(
                type=content_type,
                id=doc_id,
                url=src.get("url") or f"/{content_type.value}s/{doc_id}",
                thumbnail=src.get("thumbnail_url"),
                metadata=metadata,
            ),
            "course_id": src.get("course_id"),
            "module_id": src.get("module_id"),
            "tags": src.get("tags") or [],
            "categories": src.get("categories") or [],
            "strategy": "full_text",
        }
        for field in ("created_at", "updated_at"):
            if src.get(field):
                result[field] = src[field]
        return SearchResult.model_validate(result)

    async def suggest(
        self, partial: str, type: ContentType | None = None, limit: int = 10
    ) -> list[Suggestion]:
        """Completion suggestions for a partial query."""
        indices = self.index_name(type) if type else f"{self.index_prefix}*"
        body = {
            "suggest": {
                "title_suggest": {
                    "prefix": partial,
                    "completion": {
                        "field": "title.suggest",
                        "size": limit,
                        "skip_duplicates": True,
                        "fuzzy": {"fuzziness": "AUTO", "min_length": 3},
                    },
                }
            }
        }
        resp = await self._request(
            "POST", f"{indices}/_search", body=body, params={"ignore_unavailable": "true"}
        )
        suggestions: list[Suggestion] = []
        for entry in resp.json().get("suggest", {}).get("title_suggest", []):
            for option in entry.get("options", []):
                suggestions.append(
                    Suggestion(
                        text=option["text"],
                        type="query",
                        score=float(option.get("_score") or 0.0),
                    )
                )
        return suggestions

    # -- Documents --

    async def index(self, document: IndexDocument) -> None:
        """Index or replace one document."""
        await self._request(
            "PUT",
            f"{self.index_name(document.type)}/_doc/{document.id}",
            body=document_body(document),
            params={"refresh": "wait_for"},
        )

    async def bulk_index(self, operations: list[BulkOperation]) -> BulkResponse:
        """Apply a batch of index/update/delete operations as one NDJSON request."""
        if not operations:
            return BulkResponse()
        lines: list[dict[str, Any]] = []
        for op in operations:
            meta = {"_index": self.full_index_name(op.index), "_id": op.id}
            lines.append({op.operation: meta})
            if op.operation == "index":
                lines.append(op.document or {})
            elif op.operation == "update":
                lines.append({"doc": op.document or {}})
        payload = "\n".join(json.dumps(line, default=str) for line in lines) + "\n"
        resp = await self._request(
            "POST", "_bulk", content=payload, params={"refresh": "wait_for"}
        )
        data = resp.json()
        result = BulkResponse(
            took=int(data.get("took", 0)),
            errors=bool(data.get("errors", False)),
            items=data.get("items", []),
        )
        if result.errors:
            logger.warning("Bulk request of %d operations reported item errors", len(operations))
        return result

    async def update(self, index: str, id: str, document: dict[str, Any]) -> None:
        """Partially update one document."""
        await self._request(
            "POST",
            f"{self.full_index_name(index)}/_update/{id}",
            body={"doc": document},
            params={"refresh": "wait_for"},
        )

    async def delete(self, index: str, id: str) -> None:
        """Delete one document."""
        await self._request(
            "DELETE", f"{self.full_index_name(index)}/_doc/{id}", params={"refresh": "wait_for"}
        )

    async def get_document(self, index: str, id: str) -> dict[str, Any] | None:
        """Stored source of one document, or None."""
        resp = await self._request(
            "GET", f"{self.full_index_name(index)}/_doc/{id}", allow_404=True
        )
        if resp.status_code == 404:
            return None
        source: dict[str, Any] = resp.json().get("_source", {})
        return source

    async def document_exists(self, index: str, id: str) -> bool:
        """True if the document exists."""
        try:
            resp = await self._request(
                "HEAD", f"{self.full_index_name(index)}/_doc/{id}", allow_404=True
            )
        except IndexNotFoundError:
            return False
        return resp.status_code == 200

    # -- Index lifecycle --

    async def create_index(
        self,
        name: str,
        mapping: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        """Create an index with the default content mapping unless one is given."""
        body = {
            "mappings": mapping or DEFAULT_MAPPING,
            "settings": {"number_of_shards": 1, "number_of_replicas": 0, **(settings or {})},
        }
        await self._request("PUT", self.full_index_name(name), body=body)
        logger.info("Created index %s", self.full_index_name(name))

    async def delete_index(self, name: str) -> None:
        """Delete an index."""
        await self._request("DELETE", self.full_index_name(name))
        logger.info("Deleted index %s", self.full_index_name(name))

    async def index_exists(self, name: str) -> bool:
        """True if the index exists."""
        try:
            resp = await self._request("HEAD", self.full_index_name(name), allow_404=True)
        except IndexNotFoundError:
            return False
        return resp.status_code == 200

    async def get_index_status(self, name: str) -> IndexStatus:
        """Health, document count and size of one index."""
        index = self.full_index_name(name)
        health = (await self._request("GET", f"_cluster/health/{index}")).json()
        stats = (await self._request("GET", f"{index}/_stats")).json()
        index_stats = stats.get("indices", {}).get(index)
        return _index_status(index, health.get("status", "unknown"), index_stats)

    async def get_all_indices_status(self) -> list[IndexStatus]:
        """Status of every index under the configured prefix."""
        pattern = f"{self.index_prefix}*"
        health = (await self._request("GET", f"_cluster/health/{pattern}")).json()
        stats = (await self._request("GET", f"{pattern}/_stats")).json()
        return [
            _index_status(name, health.get("status", "unknown"), index_stats)
            for name, index_stats in sorted(stats.get("indices", {}).items())
        ]

    async def reindex(
        self, source: str, target: str, query: dict[str, Any] | None = None
    ) -> ReindexStatus:
        """Start an asynchronous copy from one index to another."""
        src: dict[str, Any] = {"index": self.full_index_name(source)}
        if query is not None:
            src["query"] = query
        resp = await self._request(
            "POST",
            "_reindex",
            body={"source": src, "dest": {"index": self.full_index_name(target)}},
            params={"wait_for_completion": "false"},
        )
        task_id = str(resp.json().get("task", ""))
        logger.info("Reindex %s -> %s started as task %s", source, target, task_id)
        return ReindexStatus(task_id=task_id, status="running", start_time=datetime.now(UTC))

    async def refresh(self, index: str) -> None:
        """Make recent writes visible to search."""
        await self._request("POST", f"{self.full_index_name(index)}/_refresh")

    async def get_mapping(self, index: str) -> dict[str, Any]:
        """Field mapping of an index."""
        name = self.full_index_name(index)
        data = (await self._request("GET", f"{name}/_mapping")).json()
        mappings: dict[str, Any] = data.get(name, {}).get("mappings", {})
        return mappings

    async def update_mapping(self, index: str, mapping: dict[str, Any]) -> None:
        """Add fields to an index mapping."""
        await self._request("PUT", f"{self.full_index_name(index)}/_mapping", body=mapping)

    async def get_settings(self, index: str) -> dict[str, Any]:
        """Settings of an index."""
        name = self.full_index_name(index)
        data = (await self._request("GET", f"{name}/_settings")).json()
        settings: dict[str, Any] = data.get(name, {}).get("settings", {})
        return settings

    async def update_settings(self, index: str, settings: dict[str, Any]) -> None:
        """Change dynamic index settings."""
        await self._request("PUT", f"{self.full_index_name(index)}/_settings", body=settings)

    async def update_alias(self, actions: list[dict[str, Any]]) -> None:
        """Apply alias add/remove actions atomically."""
        await self._request("POST", "_aliases", body={"actions": actions})

    # -- Cluster --

    async def health(self) -> bool:
        """True unless the cluster is unreachable or red."""
        try:
            data = (await self._request("GET", "_cluster/health")).json()
        except Exception:
            logger.warning("Search engine health check failed", exc_info=True)
            return False
        return data.get("status") != "red"

    async def info(self) -> dict[str, Any]:
        """Cluster name and version."""
        data: dict[str, Any] = (await self._request("GET", "")).json()
        return data

    async def stats(self) -> dict[str, Any]:
        """Cluster statistics."""
        data: dict[str, Any] = (await self._request("GET", "_cluster/stats")).json()
        return data

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def build_filters(filters: SearchFilters) -> list[dict[str, Any]]:
    """Hard constraints as ``bool.filter`` clauses. Empty filters constrain nothing."""
    clauses: list[dict[str, Any]] = []
    if filters.course_ids:
        clauses.append({"terms": {"course_id": filters.course_ids}})
    if filters.module_ids:
        clauses.append({"terms": {"module_id": filters.module_ids}})
    if filters.tags:
        clauses.append({"terms": {"tags": filters.tags}})
    if filters.categories:
        clauses.append({"terms": {"categories": filters.categories}})
    if filters.language:
        clauses.append({"term": {"language": filters.language}})
    if filters.date_range is not None:
        bounds: dict[str, str] = {}
        if filters.date_range.start is not None:
            bounds["gte"] = filters.date_range.start.isoformat()
        if filters.date_range.end is not None:
            bounds["lte"] = filters.date_range.end.isoformat()
        if bounds:
            clauses.append({"range": {"created_at": bounds}})
    return clauses


def build_sort(sort_by: SortField, order: str) -> list[dict[str, Any]]:
    """Engine sort clause; relevance and score both sort by ``_score``."""
    field = {
        SortField.RELEVANCE: "_score",
        SortField.SCORE: "_score",
        SortField.DATE: "created_at",
        SortField.TITLE: "title.keyword",
    }[sort_by]
    return [{field: {"order": order}}]


def format_highlights(highlight: dict[str, list[str]] | None) -> list[str]:
    """Flatten per-field fragments: title first, then description, then content."""
    if not highlight:
        return []
    fragments: list[str] = []
    for field in ("title", "description", "content"):
        fragments.extend(highlight.get(field, []))
    for field, values in highlight.items():
        if field not in ("title", "description", "content"):
            fragments.extend(values)
    return fragments


def format_facets(aggregations: dict[str, Any] | None) -> SearchFacets | None:
    """Terms-aggregation buckets as facet counts. Missing aggregations yield None."""
    if not aggregations:
        return None
    facets: SearchFacets = {}
    for name, agg in aggregations.items():
        buckets = agg.get("buckets") if isinstance(agg, dict) else None
        if not isinstance(buckets, list):
            continue
        facets[name] = [
            FacetCount(key=str(b.get("key_as_string", b.get("key"))), count=int(b["doc_count"]))
            for b in buckets
        ]
    return facets or None


def document_body(document: IndexDocument) -> dict[str, Any]:
    """Source document as stored in the index."""
    body = document.model_dump(mode="json", exclude={"extra"}, exclude_none=True)
    body.update(document.extra)
    return body


def _index_status(name: str, health: str, index_stats: dict[str, Any] | None) -> IndexStatus:
    total = (index_stats or {}).get("total", {})
    return IndexStatus(
        name=name,
        health=health,
        status="open" if index_stats else "close",
        document_count=int(total.get("docs", {}).get("count", 0)),
        size_bytes=int(total.get("store", {}).get("size_in_bytes", 0)),
    )


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    error = data.get("error") if isinstance(data, dict) else None
    return error if isinstance(error, dict) else {}


def _error_type(resp: httpx.Response) -> str | None:
    return _error_body(resp).get("type")


def _error_index(resp: httpx.Response) -> str | None:
    return _error_body(resp).get("index")
