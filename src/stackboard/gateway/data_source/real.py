"""Production DataSource backed by the table service's REST API."""

import json
from types import TracebackType
from typing import Any

import aiohttp

from stackboard.board.types import (
    AuditRecord,
    GroupedStackPage,
    PageInfo,
    PageParams,
    Record,
    RowDeleteBlocked,
    RowsPage,
    SelectOption,
    TableColumn,
    TableMeta,
    ViewMetadata,
    ViewMetadataUpdate,
    ViewQuery,
)
from stackboard.gateway.data_source.abc import DataSource
from stackboard.gateway.data_source.http import RestClient

AUTH_HEADER = "xc-auth"


class RealDataSource(DataSource):
    """Authenticated read-write data source.

    Use as an async context manager (or call close()) to release the HTTP
    session.
    """

    def __init__(
        self,
        *,
        base_url: str,
        project_id: str,
        token: str | None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize RealDataSource.

        Args:
            base_url: Service root, e.g. "https://tables.example.com"
            project_id: Project (base) identifier used in data URLs
            token: Auth token sent in the xc-auth header, None for no auth header
            session: Pre-built session; created lazily when None
        """
        self._project_id = project_id
        self._client = RestClient(
            base_url=base_url,
            headers={AUTH_HEADER: token} if token else {},
            session=session,
        )

    async def __aenter__(self) -> "RealDataSource":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    def _data_path(self, table_id: str, view_id: str) -> str:
        return f"/api/v1/db/data/noco/{self._project_id}/{table_id}/views/{view_id}"

    # === READ OPERATIONS ===

    async def fetch_table_meta(self, table_id: str) -> TableMeta:
        data = await self._client.request(
            "fetch_table_meta", "GET", f"/api/v1/db/meta/tables/{table_id}"
        )
        return parse_table_meta(data)

    async def fetch_view_metadata(self, view_id: str) -> ViewMetadata:
        data = await self._client.request(
            "fetch_view_metadata", "GET", f"/api/v1/db/meta/kanbans/{view_id}"
        )
        return parse_view_metadata(view_id, data)

    async def fetch_grouped_rows(
        self,
        *,
        table_id: str,
        view_id: str,
        grouping_column_id: str,
        query: ViewQuery,
    ) -> list[GroupedStackPage]:
        data = await self._client.request(
            "fetch_grouped_rows",
            "GET",
            f"{self._data_path(table_id, view_id)}/group/{grouping_column_id}",
            params=build_query_params(query),
        )
        return parse_grouped_rows(data)

    async def fetch_rows_page(
        self,
        *,
        table_id: str,
        view_id: str,
        where: str,
        query: ViewQuery,
        page: PageParams,
    ) -> RowsPage:
        params = build_query_params(query)
        params.update({"where": where, "offset": str(page.offset), "limit": str(page.limit)})
        data = await self._client.request(
            "fetch_rows_page", "GET", self._data_path(table_id, view_id), params=params
        )
        return parse_rows_page(data, page)

    # === WRITE OPERATIONS ===

    async def update_view_metadata(self, view_id: str, updates: ViewMetadataUpdate) -> None:
        payload: dict[str, object] = {}
        if updates.serialized_stack_meta is not None:
            payload["meta"] = updates.serialized_stack_meta
        if updates.grouping_column_id is not None:
            payload["fk_grp_col_id"] = updates.grouping_column_id
        await self._client.request(
            "update_view_metadata", "PATCH", f"/api/v1/db/meta/kanbans/{view_id}", payload=payload
        )

    async def update_column_options(
        self, column_id: str, options: tuple[SelectOption, ...]
    ) -> None:
        payload = {
            "colOptions": {
                "options": [
                    {"id": opt.id, "title": opt.title, "order": opt.order, "color": opt.color}
                    for opt in options
                ]
            }
        }
        await self._client.request(
            "update_column_options", "PATCH", f"/api/v1/db/meta/columns/{column_id}", payload=payload
        )

    async def create_row(self, *, table_id: str, view_id: str, values: Record) -> Record:
        data = await self._client.request(
            "create_row", "POST", self._data_path(table_id, view_id), payload=values
        )
        return dict(data)

    async def update_row_field(
        self,
        *,
        table_id: str,
        view_id: str,
        primary_key: str,
        values: Record,
    ) -> Record:
        data = await self._client.request(
            "update_row_field",
            "PATCH",
            f"{self._data_path(table_id, view_id)}/{primary_key}",
            payload=values,
        )
        return dict(data)

    async def delete_row(
        self, *, table_id: str, view_id: str, primary_key: str
    ) -> RowDeleteBlocked | None:
        data = await self._client.request(
            "delete_row", "DELETE", f"{self._data_path(table_id, view_id)}/{primary_key}"
        )
        # A refused delete answers 200 with the blocking reasons in "message"
        if isinstance(data, dict) and data.get("message"):
            reasons = data["message"]
            if isinstance(reasons, str):
                reasons = [reasons]
            return RowDeleteBlocked(reasons=tuple(str(r) for r in reasons))
        return None

    async def bulk_update_by_filter(self, *, table_id: str, values: Record, where: str) -> None:
        await self._client.request(
            "bulk_update_by_filter",
            "PATCH",
            f"/api/v1/db/data/bulk/noco/{self._project_id}/{table_id}/all",
            params={"where": where},
            payload=values,
        )

    async def record_audit(self, *, table_id: str, primary_key: str, record: AuditRecord) -> None:
        await self._client.request(
            "record_audit",
            "POST",
            f"/api/v1/db/meta/audits/rows/{primary_key}/update",
            payload={
                "fk_model_id": table_id,
                "column_name": record.field_name,
                "row_id": primary_key,
                "value": record.new_value_encoded,
                "prev_value": record.old_value_encoded,
            },
        )


def build_query_params(query: ViewQuery) -> dict[str, str]:
    """Encode the client-side sorts/filters the server does not already own."""
    params: dict[str, str] = {}
    if not query.sorts_on_server:
        params["sortArrJson"] = json.dumps(list(query.sorts))
    if not query.filters_on_server:
        params["filterArrJson"] = json.dumps(list(query.filters))
    return params


def _parse_option(data: dict[str, Any]) -> SelectOption:
    order = data.get("order")
    return SelectOption(
        id=str(data["id"]),
        title=str(data["title"]),
        order=float(order) if order is not None else None,
        color=data.get("color"),
    )


def parse_table_meta(data: dict[str, Any]) -> TableMeta:
    columns: list[TableColumn] = []
    for col in data.get("columns", []):
        col_options = col.get("colOptions") or {}
        options = tuple(_parse_option(o) for o in col_options.get("options", []) or [])
        columns.append(
            TableColumn(
                title=col["title"],
                is_primary_key=bool(col.get("pk")),
                is_auto_generated=bool(col.get("ai")),
                column_id=str(col["id"]),
                options=options,
            )
        )
    return TableMeta(id=str(data["id"]), title=str(data.get("title", "")), columns=tuple(columns))


def parse_view_metadata(view_id: str, data: dict[str, Any]) -> ViewMetadata:
    meta = data.get("meta")
    if meta is not None and not isinstance(meta, str):
        meta = json.dumps(meta)
    grouping_column_id = data.get("fk_grp_col_id")
    return ViewMetadata(
        view_id=view_id,
        grouping_column_id=str(grouping_column_id) if grouping_column_id is not None else None,
        serialized_stack_meta=meta,
    )


def parse_grouped_rows(data: list[dict[str, Any]]) -> list[GroupedStackPage]:
    pages: list[GroupedStackPage] = []
    for group in data or []:
        value = group.get("value") or {}
        page_info = value.get("pageInfo") or {}
        pages.append(
            GroupedStackPage(
                key=group.get("key"),
                rows=tuple(dict(r) for r in value.get("list", [])),
                total_count=int(page_info.get("totalRows") or 0),
            )
        )
    return pages


def parse_rows_page(data: dict[str, Any], page: PageParams) -> RowsPage:
    page_info = data.get("pageInfo") or {}
    return RowsPage(
        rows=tuple(dict(r) for r in data.get("list", [])),
        page_info=PageInfo(
            total_rows=int(page_info.get("totalRows") or 0),
            offset=page.offset,
            is_last_page=bool(page_info.get("isLastPage", True)),
        ),
    )
