"""Data source gateway for board rows and view metadata.

Import from submodules:
- stackboard.gateway.data_source.abc: ReadOnlyDataSource, DataSource (ABCs)
- stackboard.gateway.data_source.real: RealDataSource (authenticated REST API)
- stackboard.gateway.data_source.shared: SharedViewDataSource (anonymous, read-only)
- stackboard.gateway.data_source.fake: FakeDataSource (in-memory)
"""
