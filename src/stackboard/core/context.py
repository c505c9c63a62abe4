"""Application context with dependency injection."""

from collections.abc import Callable
from dataclasses import dataclass

from stackboard.cli.config import BoardConfig, default_config_dir, load_config
from stackboard.gateway.data_source.abc import DataSource, ReadOnlyDataSource
from stackboard.gateway.data_source.real import RealDataSource
from stackboard.gateway.data_source.shared import SharedViewDataSource
from stackboard.gateway.feedback.abc import UserFeedback
from stackboard.gateway.feedback.real import ConsoleFeedback

SharedSourceFactory = Callable[[str, str | None], ReadOnlyDataSource]


@dataclass(frozen=True)
class BoardContext:
    """Immutable context holding all dependencies for stackboard operations.

    Created once at CLI entry point and threaded through the application.
    Frozen to prevent accidental modification at runtime.

    Attributes:
        config: Loaded configuration
        feedback: Where notices and errors are reported
        open_source: Builds the read-write data source
        open_shared_source: Builds a read-only source for a shared view uuid
            and optional password
    """

    config: BoardConfig
    feedback: UserFeedback
    open_source: Callable[[], DataSource]
    open_shared_source: SharedSourceFactory

    @staticmethod
    def for_test(
        *,
        source: DataSource | None = None,
        shared_source: ReadOnlyDataSource | None = None,
        feedback: UserFeedback | None = None,
        config: BoardConfig | None = None,
    ) -> "BoardContext":
        """Create a context wired to fakes.

        Example:
            >>> source = FakeDataSource(table=table, rows=rows, view=view)
            >>> ctx = BoardContext.for_test(source=source)
        """
        from stackboard.board.types import TableMeta
        from stackboard.gateway.data_source.fake import FakeDataSource
        from stackboard.gateway.feedback.fake import FakeUserFeedback

        resolved_source: DataSource = (
            source
            if source is not None
            else FakeDataSource(table=TableMeta(id="tbl", title="Table", columns=()))
        )
        resolved_shared: ReadOnlyDataSource = (
            shared_source if shared_source is not None else resolved_source
        )
        resolved_config = (
            config
            if config is not None
            else BoardConfig(
                base_url="http://fake",
                project_id="p_fake",
                token=None,
                page_size=25,
                uncategorized_color="#c2f5e8",
                uncategorized_order=None,
            )
        )
        return BoardContext(
            config=resolved_config,
            feedback=feedback if feedback is not None else FakeUserFeedback(),
            open_source=lambda: resolved_source,
            open_shared_source=lambda uuid, password: resolved_shared,
        )


def create_context() -> BoardContext:
    """Create production context with real implementations."""
    config = load_config(default_config_dir())

    def open_source() -> DataSource:
        return RealDataSource(
            base_url=config.base_url, project_id=config.project_id, token=config.token
        )

    def open_shared_source(uuid: str, password: str | None) -> ReadOnlyDataSource:
        return SharedViewDataSource(
            base_url=config.base_url, shared_view_uuid=uuid, password=password
        )

    return BoardContext(
        config=config,
        feedback=ConsoleFeedback(),
        open_source=open_source,
        open_shared_source=open_shared_source,
    )
