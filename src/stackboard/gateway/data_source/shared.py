"""Anonymous, read-only data source for publicly shared views."""

import json
from types import TracebackType
from typing import Any

import aiohttp

from stackboard.board.types import (
    GroupedStackPage,
    PageParams,
    RowsPage,
    TableColumn,
    TableMeta,
    ViewMetadata,
    ViewQuery,
)
from stackboard.gateway.data_source.abc import ReadOnlyDataSource
from stackboard.gateway.data_source.http import RestClient
from stackboard.gateway.data_source.real import (
    build_query_params,
    parse_grouped_rows,
    parse_rows_page,
    parse_table_meta,
    parse_view_metadata,
)

PASSWORD_HEADER = "xc-password"


class SharedViewDataSource(ReadOnlyDataSource):
    """Snapshot fetches of a shared view, addressed by its public uuid.

    Table and view ids passed to the fetch methods are ignored: the shared
    view uuid already identifies both. There are no mutation methods.
    """

    def __init__(
        self,
        *,
        base_url: str,
        shared_view_uuid: str,
        password: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._uuid = shared_view_uuid
        self._client = RestClient(
            base_url=base_url,
            headers={PASSWORD_HEADER: password} if password else {},
            session=session,
        )
        self._shared_meta: dict[str, Any] | None = None

    async def __aenter__(self) -> "SharedViewDataSource":
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

    @property
    def _base_path(self) -> str:
        return f"/api/v1/db/public/shared-view/{self._uuid}"

    async def _load_shared_meta(self) -> dict[str, Any]:
        if self._shared_meta is None:
            self._shared_meta = await self._client.request(
                "fetch_shared_view_meta", "GET", f"{self._base_path}/meta"
            )
        return self._shared_meta

    async def fetch_table_meta(self, table_id: str) -> TableMeta:
        data = await self._load_shared_meta()
        table = parse_table_meta(data.get("model") or {"id": table_id, "columns": []})
        grouping = _shared_grouping_column(data)
        if grouping is None or table.column_by_id(grouping.column_id) is not None:
            return table
        # The shared model can omit the grouping column; the view meta carries it
        return TableMeta(id=table.id, title=table.title, columns=(*table.columns, grouping))

    async def fetch_view_metadata(self, view_id: str) -> ViewMetadata:
        data = await self._load_shared_meta()
        view = dict(data.get("view") or {})
        if view.get("fk_grp_col_id") is None:
            grouping = _shared_grouping_column(data)
            if grouping is not None:
                view["fk_grp_col_id"] = grouping.column_id
        return parse_view_metadata(view_id, view)

    async def fetch_grouped_rows(
        self,
        *,
        table_id: str,
        view_id: str,
        grouping_column_id: str,
        query: ViewQuery,
    ) -> list[GroupedStackPage]:
        data = await self._client.request(
            "fetch_shared_grouped_rows",
            "GET",
            f"{self._base_path}/group/{grouping_column_id}",
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
            "fetch_shared_rows_page", "GET", f"{self._base_path}/rows", params=params
        )
        return parse_rows_page(data, page)


def _shared_grouping_column(data: dict[str, Any]) -> TableColumn | None:
    meta = data.get("meta")
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except json.JSONDecodeError:
            return None
    if not isinstance(meta, dict):
        return None
    column = meta.get("groupingFieldColumn")
    if not isinstance(column, dict):
        return None
    parsed = parse_table_meta({"id": "", "columns": [column]})
    return parsed.columns[0]
