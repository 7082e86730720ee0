"""Textual TUI - market list, detail panel with the current action, sidebar."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Label, Static

from predmarket.api.client import MetadataClient
from predmarket.chain.contract import MarketContract
from predmarket.chain.dispatcher import ActionDispatcher
from predmarket.errors import PredMarketError, ValidationError
from predmarket.models import MarketTag
from predmarket.proposal.flow import STEP_LABELS, ProposalFlow, ProposalForm, ProposalStep
from predmarket.tui.context import LayoutContext
from predmarket.view.board import SORT_ORDERS, STATUS_FILTERS, MarketBoard, MarketEvents
from predmarket.view.panels import render_panel
from predmarket.view.state import MarketViewState

TAG_CYCLE: list[str | None] = [None] + [t.value for t in MarketTag]


class FilterBar(Static):
    """Current status filter, tag and sort order."""

    status = reactive("all")
    tag = reactive("")
    sort = reactive("newest")

    def render(self) -> str:
        return (
            f"[bold]Filter[/] {self.status}  |  "
            f"Tag: {self.tag or 'any'}  |  "
            f"Sort: {self.sort}"
        )


class Sidebar(Static):
    """Category counts."""

    def __init__(self, layout: LayoutContext, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._layout = layout

    def on_mount(self) -> None:
        self.display = self._layout.sidebar_open

    def show_counts(self, views: list[MarketViewState]) -> None:
        counts: dict[str, int] = {t.value: 0 for t in MarketTag}
        for v in views:
            if v.tag:
                counts[v.tag] = counts.get(v.tag, 0) + 1
        lines = ["[bold]Categories[/]"] + [f"{tag}: {n}" for tag, n in counts.items()]
        self.update("\n".join(lines))


class MarketTable(DataTable):
    """Table of markets with odds, volume and time left."""

    def on_mount(self) -> None:
        self.cursor_type = "row"
        self.add_columns("#", "Question", "A %", "B %", "Volume", "Ends", "State")

    def show(self, views: list[MarketViewState]) -> None:
        selected = self.cursor_row
        self.clear()
        for v in views:
            m = v.market
            question = m.question[:48] + "..." if len(m.question) > 48 else m.question
            self.add_row(
                str(v.market_id),
                question + (" *" if v.optimistic else ""),
                f"{v.option_a_percentage}%",
                f"{v.option_b_percentage}%",
                v.volume_label,
                v.time_label,
                v.presentation_state.value,
                key=str(v.market_id),
            )
        if views:
            self.move_cursor(row=min(selected, len(views) - 1))


class DetailPanel(Static):
    """Selected market: description, odds and the action for its presentation state."""

    def show(self, view: MarketViewState | None) -> None:
        if view is None or view.market is None:
            self.update("No market selected")
            return
        m = view.market
        panel = render_panel(view)
        lines = [f"[bold]#{m.id} {m.question}[/]"]
        if view.description:
            lines.append(view.description)
        lines.append(f"Image: {view.image_url}")
        lines.append(f"{m.option_a} {view.option_a_percentage}%  /  {m.option_b} {view.option_b_percentage}%")
        lines.append(f"Volume: {view.volume_label}  Ends: {view.time_label}")
        if view.position is not None:
            lines.append(f"Your shares: A {view.position.option_a_shares}  B {view.position.option_b_shares}")
        lines.append("")
        lines.append(f"[bold]{panel.title}[/]")
        lines.extend(panel.lines)
        if panel.action in ("claim_winnings", "claim_refund"):
            lines.append("[dim]Press c to claim[/]")
        elif panel.action == "buy":
            lines.append("[dim]Buy with: predmarket trade buy[/]")
        self.update("\n".join(lines))


PROPOSE_FIELDS = [
    ("question", "Question"),
    ("option_a", "Option A"),
    ("option_b", "Option B"),
    ("description", "Description and resolution criteria"),
    ("tag", f"Tag: {', '.join(t.value for t in MarketTag)}"),
    ("resolution_time", "Ends at, local time (2025-01-31T18:00)"),
    ("image", "Image file path"),
]


def build_form(fields: dict[str, str]) -> ProposalForm:
    """ProposalForm from the propose screen's inputs. Unreadable input raises ValidationError."""
    raw_time = fields.get("resolution_time", "").strip()
    try:
        resolution_time = datetime.fromisoformat(raw_time) if raw_time else None
    except ValueError as e:
        raise ValidationError(f"Resolution time must look like 2025-01-31T18:00, got {raw_time!r}") from e
    image = fields.get("image", "").strip()
    if not image:
        raise ValidationError("Image is required")
    return ProposalForm.with_image_file(
        image,
        question=fields.get("question", ""),
        option_a=fields.get("option_a", ""),
        option_b=fields.get("option_b", ""),
        description=fields.get("description", ""),
        tag=fields.get("tag", "").strip(),
        resolution_time=resolution_time,
    )


class ProposeScreen(ModalScreen[dict[str, str] | None]):
    """Market proposal form; dismissed with the raw field values, or None on cancel."""

    DEFAULT_CSS = """
    ProposeScreen { align: center middle; }
    #propose { width: 72; height: auto; padding: 1 2; border: thick $primary; background: $surface; }
    #propose-buttons { height: auto; margin-top: 1; }
    """
    BINDINGS = [("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        with Vertical(id="propose"):
            yield Label("[bold]Propose a market[/]")
            for name, placeholder in PROPOSE_FIELDS:
                yield Input(placeholder=placeholder, id=f"field-{name}")
            with Horizontal(id="propose-buttons"):
                yield Button("Submit", variant="primary", id="submit")
                yield Button("Cancel", id="cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id != "submit":
            self.dismiss(None)
            return
        self.dismiss({name: self.query_one(f"#field-{name}", Input).value for name, _ in PROPOSE_FIELDS})

    def action_cancel(self) -> None:
        self.dismiss(None)


class MarketBoardApp(App[None]):
    """predmarket TUI - live market board."""

    TITLE = "predmarket"
    CSS = """
    #body { height: 1fr; }
    #sidebar { width: 22; border-right: solid $primary; padding: 0 1; }
    #markets { width: 2fr; }
    #detail { width: 1fr; padding: 0 1; border-left: solid $primary; }
    """
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f", "cycle_status", "Filter"),
        ("g", "cycle_tag", "Tag"),
        ("o", "cycle_sort", "Sort"),
        ("s", "toggle_sidebar", "Sidebar"),
        ("t", "toggle_theme", "Theme"),
        ("c", "claim", "Claim"),
        ("n", "propose", "Propose"),
    ]

    def __init__(
        self,
        board: MarketBoard,
        layout: LayoutContext,
        dispatcher: ActionDispatcher | None = None,
        metadata: MetadataClient | None = None,
        proposals: ProposalFlow | None = None,
        contract: MarketContract | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._board = board
        self._layout = layout
        self._dispatcher = dispatcher
        self._metadata = metadata
        self._proposals = proposals
        self._contract = contract
        self._views: list[MarketViewState] = []
        self._selected: int | None = None
        if proposals is not None and proposals.on_step is None:
            proposals.on_step = self._proposal_step

    def compose(self) -> ComposeResult:
        yield Header()
        yield FilterBar(id="filters")
        with Horizontal(id="body"):
            yield Sidebar(self._layout, id="sidebar")
            yield MarketTable(id="markets")
            yield DetailPanel(id="detail")
        yield Footer()

    async def on_mount(self) -> None:
        self._apply_theme()
        await self._board.__aenter__()
        self.set_interval(1.0, self._refresh)

    async def on_unmount(self) -> None:
        await self._board.close()
        if self._metadata is not None:
            await self._metadata.aclose()
        if self._contract is not None:
            await self._contract.close()

    def _apply_theme(self) -> None:
        self.theme = "textual-light" if self._layout.theme == "light" else "textual-dark"

    def _current(self) -> MarketViewState | None:
        for v in self._views:
            if v.market_id == self._selected:
                return v
        return None

    def _refresh(self) -> None:
        bar = self.query_one(FilterBar)
        entries = self._board.entries()
        self._views = self._board.select(status=bar.status, tag=bar.tag or None, sort=bar.sort)
        self.query_one(MarketTable).show(self._views)
        self.query_one(Sidebar).show_counts(entries)
        self.query_one(DetailPanel).show(self._current())

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value is not None:
            self._selected = int(event.row_key.value)
            self.query_one(DetailPanel).show(self._current())

    def action_cycle_status(self) -> None:
        bar = self.query_one(FilterBar)
        bar.status = STATUS_FILTERS[(STATUS_FILTERS.index(bar.status) + 1) % len(STATUS_FILTERS)]
        self._refresh()

    def action_cycle_tag(self) -> None:
        bar = self.query_one(FilterBar)
        current = bar.tag or None
        bar.tag = TAG_CYCLE[(TAG_CYCLE.index(current) + 1) % len(TAG_CYCLE)] or ""
        self._refresh()

    def action_cycle_sort(self) -> None:
        bar = self.query_one(FilterBar)
        bar.sort = SORT_ORDERS[(SORT_ORDERS.index(bar.sort) + 1) % len(SORT_ORDERS)]
        self._refresh()

    def action_toggle_sidebar(self) -> None:
        self.query_one(Sidebar).display = self._layout.toggle_sidebar()

    def action_toggle_theme(self) -> None:
        self._layout.toggle_theme()
        self._apply_theme()

    def action_claim(self) -> None:
        view = self._current()
        if view is None:
            return
        action = render_panel(view).action
        if action not in ("claim_winnings", "claim_refund"):
            self.notify("Nothing to claim for this market")
            return
        if self._dispatcher is None:
            self.notify("Set the signing key environment variable to send transactions", severity="warning")
            return
        self.run_worker(self._claim(view.market_id, action), exclusive=True)

    async def _claim(self, market_id: int, action: str) -> None:
        try:
            if action == "claim_refund":
                await self._dispatcher.claim_refund(market_id)
            else:
                await self._dispatcher.claim_winnings(market_id)
        except PredMarketError as e:
            self.notify(str(e), title="Claim failed", severity="error")
            return
        self.notify("Claim confirmed")
        rec = self._board.reconciler(market_id)
        if rec is not None:
            await rec.refresh()
        self._refresh()

    def action_propose(self) -> None:
        if self._proposals is None:
            self.notify("Set the signing key environment variable to propose markets", severity="warning")
            return
        self.push_screen(ProposeScreen(), self._on_propose_form)

    def _on_propose_form(self, fields: dict[str, str] | None) -> None:
        if fields is None:
            return
        try:
            form = build_form(fields)
        except ValidationError as e:
            self.notify(str(e), title="Invalid proposal", severity="error")
            return
        self.run_worker(self._propose(form), group="propose", exclusive=True)

    def _proposal_step(self, step: ProposalStep) -> None:
        if step in STEP_LABELS:
            self.notify(STEP_LABELS[step], title="Proposal")

    async def _propose(self, form: ProposalForm) -> None:
        result = await self._proposals.submit(form)
        if result.ok:
            self.notify(f"Market {result.market_id} created", title="Proposal")
        elif result.failed_step is None:
            self.notify(result.error or "", title="Invalid proposal", severity="error")
        else:
            step = result.failed_step.value.replace("_", " ")
            self.notify(f"Failed while {step}: {result.error}", title="Proposal failed", severity="error")
        # The creation broadcast has already added the optimistic row.
        self._refresh()


def build_app(settings: Any, wallet: str | None = None) -> MarketBoardApp:
    """Sources, board, proposal flow and layout context wired for one TUI session."""
    contract = MarketContract.from_settings(settings)
    dispatcher = None
    if settings.private_key:
        dispatcher = ActionDispatcher(
            contract, settings.private_key, settings.chain_id, settings.receipt_timeout_sec
        )
        wallet = wallet or dispatcher.address
    metadata = MetadataClient(settings.api_base_url, timeout=settings.api_timeout_sec)
    events = MarketEvents()
    board = MarketBoard(
        contract,
        metadata,
        contract,
        wallet,
        events,
        poll_interval=settings.poll_interval_sec,
        metadata_max_attempts=settings.metadata_max_attempts,
    )
    proposals = ProposalFlow.from_settings(settings, dispatcher, metadata, events) if dispatcher else None
    layout = LayoutContext.load(settings.layout_state_path)
    return MarketBoardApp(board, layout, dispatcher, metadata, proposals, contract)


def run_tui(settings: Any, wallet: str | None = None) -> None:
    build_app(settings, wallet).run()
