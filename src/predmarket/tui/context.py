"""Layout context - sidebar and theme state owned by the application root."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

THEMES = ("dark", "light")


@dataclass
class LayoutContext:
    """Passed down explicitly to every widget that needs it. Only the theme is persisted."""

    sidebar_open: bool = False
    theme: str = "dark"
    state_path: Path | None = None

    @classmethod
    def load(cls, state_path: str | Path | None) -> LayoutContext:
        ctx = cls(state_path=Path(state_path) if state_path else None)
        if ctx.state_path is None or not ctx.state_path.exists():
            return ctx
        try:
            saved = json.loads(ctx.state_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            log.warning("layout_state_unreadable", path=str(ctx.state_path), error=str(e))
            return ctx
        if saved.get("theme") in THEMES:
            ctx.theme = saved["theme"]
        return ctx

    def save(self) -> None:
        if self.state_path is None:
            return
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(json.dumps({"theme": self.theme}))
        except OSError as e:
            log.warning("layout_state_save_failed", path=str(self.state_path), error=str(e))

    def toggle_sidebar(self) -> bool:
        self.sidebar_open = not self.sidebar_open
        return self.sidebar_open

    def toggle_theme(self) -> str:
        self.theme = "light" if self.theme == "dark" else "dark"
        self.save()
        return self.theme
