"""Callback implementations for the Gradio interface."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from config.settings import AppConfig
from modules.errors import FormatError, ValidationError
from modules.services.export_service import ExportService
from modules.utils.image_utils import load_source_image
from modules.workflow.orchestrator import WorkflowOrchestrator
from modules.workflow.state import Phase, WorkflowState

logger = logging.getLogger(__name__)

# Order of the components every callback updates; see layout.build_app.
VIEW_FIELDS = (
    "source_image",
    "generated_image",
    "prompt",
    "negative_prompt",
    "aspect_ratio",
    "rating",
    "status",
    "history",
    "quota",
    "download",
)

View = Tuple[Any, ...]


@dataclass(slots=True)
class StudioSession:
    """Per-browser workflow plus the files exported for it."""

    orchestrator: WorkflowOrchestrator
    exporter: ExportService


def build_callbacks(config: AppConfig) -> dict[str, Callable[..., Any]]:
    """Return a dictionary of Gradio callback functions.

    Every callback takes the caller's StudioSession (held in ``gr.State``)
    as its first argument.
    """

    def _save(
        session: StudioSession,
        shown: Set[str],
        key: str,
        reference: Optional[str],
        file_name: str,
    ) -> Optional[str]:
        if not reference:
            return None
        try:
            path = session.exporter.export(key, reference, file_name)
        except (FormatError, OSError) as exc:
            logger.error("Could not export %s: %s", file_name, exc)
            return None
        shown.add(key)
        return str(path)

    def _status(state: WorkflowState) -> str:
        if state.is_generating:
            return "Generating..."
        if state.error:
            return f"**Error:** {state.error}"
        if state.outcome is Phase.SUCCEEDED:
            return "Image generated successfully."
        if state.source_image is not None:
            return "Describe the edit and press Generate."
        return "Ready. Describe an image, or upload one to edit."

    def _history(session: StudioSession, shown: Set[str]) -> List[Tuple[str, str]]:
        items: List[Tuple[str, str]] = []
        for entry in session.orchestrator.history_entries():
            path = _save(session, shown, entry.id, entry.image_reference, entry.file_name)
            if path:
                items.append((path, f"{entry.created_at} · {entry.file_name}"))
        return items

    def _quota(session: StudioSession) -> str:
        remaining = session.orchestrator.remaining_quota()
        return f"Generations remaining today: **{remaining}/{config.max_generations_per_day}**"

    def _render(session: StudioSession, state: WorkflowState) -> View:
        shown: Set[str] = set()
        source_path = None
        if state.source_image is not None:
            reference = state.source_image.preview_reference
            digest = hashlib.sha1(reference.encode("ascii", "replace")).hexdigest()[:12]
            source_path = _save(
                session, shown, f"source-{digest}", reference, state.source_image.display_name
            )
        generated_path = _save(
            session,
            shown,
            f"result-{state.dispatch_id}",
            state.generated_image,
            state.generated_file_name or "image.png",
        )
        history = _history(session, shown)
        session.exporter.prune(shown)
        return (
            source_path,
            generated_path,
            state.prompt,
            state.negative_prompt,
            state.aspect_ratio.value,
            str(state.rating) if state.rating else None,
            _status(state),
            history,
            _quota(session),
            generated_path,
        )

    def _sync_inputs(
        orchestrator: WorkflowOrchestrator, prompt: str, negative_prompt: str, aspect_ratio: str
    ) -> None:
        orchestrator.set_prompt(prompt)
        orchestrator.set_negative_prompt(negative_prompt)
        orchestrator.set_aspect_ratio(aspect_ratio or "1:1")

    def on_load(session: StudioSession) -> View:
        return _render(session, session.orchestrator.state)

    def on_upload(session: StudioSession, path: Optional[str]) -> View:
        orchestrator = session.orchestrator
        if not path:
            return _render(session, orchestrator.remove_image())
        try:
            image = load_source_image(path)
        except ValidationError as exc:
            return _render(session, orchestrator.reject_input(exc.message))
        return _render(session, orchestrator.upload_image(image))

    def on_remove_image(session: StudioSession) -> View:
        return _render(session, session.orchestrator.remove_image())

    async def on_generate(
        session: StudioSession, prompt: str, negative_prompt: str, aspect_ratio: str
    ) -> View:
        _sync_inputs(session.orchestrator, prompt, negative_prompt, aspect_ratio)
        return _render(session, await session.orchestrator.generate())

    async def on_retry(session: StudioSession) -> View:
        return _render(session, await session.orchestrator.retry())

    async def on_extend(session: StudioSession, aspect_ratio: str) -> View:
        session.orchestrator.set_aspect_ratio(aspect_ratio or "1:1")
        return _render(session, await session.orchestrator.extend())

    def on_rate(session: StudioSession, value: Optional[str]) -> View:
        rating = int(value) if value else 0
        return _render(session, session.orchestrator.set_rating(rating))

    def on_clear_history(session: StudioSession, confirmed: bool) -> View:
        return _render(session, session.orchestrator.clear_history(confirmed=bool(confirmed)))

    def on_reset(session: StudioSession, confirmed: bool) -> View:
        return _render(session, session.orchestrator.reset(confirmed=bool(confirmed)))

    callbacks: Dict[str, Callable[..., Any]] = {
        "on_load": on_load,
        "on_upload": on_upload,
        "on_remove_image": on_remove_image,
        "on_generate": on_generate,
        "on_retry": on_retry,
        "on_extend": on_extend,
        "on_rate": on_rate,
        "on_clear_history": on_clear_history,
        "on_reset": on_reset,
    }
    return callbacks
