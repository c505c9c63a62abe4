import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from stackboard.board.errors import ConfigurationError
from stackboard.board.pagination import DEFAULT_PAGE_SIZE
from stackboard.board.reconciler import DEFAULT_UNCATEGORIZED_COLOR

TOKEN_ENV_VAR = "STACKBOARD_TOKEN"


@dataclass(frozen=True)
class BoardConfig:
    """In-memory representation of `~/.stackboard/config.toml`.

    Example config.toml:
      base_url = "https://tables.example.com"
      project_id = "p_abc123"
      # token may also come from $STACKBOARD_TOKEN
      token = "..."

      [board]
      page_size = 50
      uncategorized_color = "#c2f5e8"
      # uncategorized_order = -1
    """

    base_url: str
    project_id: str
    token: str | None
    page_size: int
    uncategorized_color: str | None
    uncategorized_order: float | None


def default_config_dir() -> Path:
    return Path.home() / ".stackboard"


def load_config(config_dir: Path, env: dict[str, str] | None = None) -> BoardConfig:
    """Load config.toml from the given directory if present; otherwise return defaults.

    Args:
        config_dir: Directory holding config.toml
        env: Environment mapping, defaults to os.environ

    Raises:
        ConfigurationError: If a value has the wrong type
    """
    environ = env if env is not None else dict(os.environ)

    cfg_path = config_dir / "config.toml"
    data = tomllib.loads(cfg_path.read_text(encoding="utf-8")) if cfg_path.exists() else {}
    board = data.get("board", {})

    token = environ.get(TOKEN_ENV_VAR) or data.get("token")
    page_size = board.get("page_size", DEFAULT_PAGE_SIZE)
    if not isinstance(page_size, int) or page_size <= 0:
        msg = f"board.page_size must be a positive integer, got {page_size!r}"
        raise ConfigurationError(msg)

    order = board.get("uncategorized_order")
    if order is not None and not isinstance(order, int | float):
        msg = f"board.uncategorized_order must be a number, got {order!r}"
        raise ConfigurationError(msg)

    color = board.get("uncategorized_color", DEFAULT_UNCATEGORIZED_COLOR)
    return BoardConfig(
        base_url=str(data.get("base_url", "http://localhost:8080")),
        project_id=str(data.get("project_id", "")),
        token=str(token) if token else None,
        page_size=page_size,
        uncategorized_color=str(color) if color is not None else None,
        uncategorized_order=float(order) if order is not None else None,
    )
