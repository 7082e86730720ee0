"""Market view-model: derivations, reconciler, market list and action panels."""

from predmarket.view.board import MarketBoard, MarketEvents, select_views
from predmarket.view.panels import ActionPanel, render_panel
from predmarket.view.reconciler import MarketReconciler
from predmarket.view.state import (
    MarketViewState,
    PresentationState,
    build_view_state,
    classify,
    format_time_remaining,
    format_volume,
    option_a_percentage,
)

__all__ = [
    "ActionPanel",
    "MarketBoard",
    "MarketEvents",
    "MarketReconciler",
    "MarketViewState",
    "PresentationState",
    "build_view_state",
    "classify",
    "format_time_remaining",
    "format_volume",
    "option_a_percentage",
    "render_panel",
    "select_views",
]
