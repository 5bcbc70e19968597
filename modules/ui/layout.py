"""Gradio layout composition for the create / edit / extend workflow.

Each browser session gets its own StudioSession through ``gr.State``, so
images, inputs and history never leak between tabs. The daily quota and the
Gemini client are shared by every session of the process.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional

try:
    import gradio as gr
except ImportError:  # pragma: no cover
    gr = None  # type: ignore

from config.settings import AppConfig
from modules.pipelines.gemini_service import GeminiImageService
from modules.pipelines.request_builder import AspectRatio
from modules.services.export_service import ExportService
from modules.services.quota_service import QuotaTracker
from modules.services.storage_service import FileStorage
from modules.ui.callbacks import StudioSession, build_callbacks
from modules.workflow.orchestrator import WorkflowOrchestrator

CONFIRM_CLEAR_JS = (
    "(session, confirmed) => "
    "[session, confirm('Clear the entire history? This cannot be undone.')]"
)
CONFIRM_RESET_JS = (
    "(session, confirmed) => "
    "[session, confirm('Reset everything? Images, prompts and history will be lost.')]"
)


def build_session_factory(config: AppConfig) -> Callable[[], StudioSession]:
    """Wire the production services and return a per-session constructor."""
    quota = QuotaTracker(
        FileStorage(config.state_dir),
        max_per_day=config.max_generations_per_day,
    )
    service = GeminiImageService(config)

    def new_session() -> StudioSession:
        session_dir = config.output_dir / uuid.uuid4().hex[:12]
        return StudioSession(
            orchestrator=WorkflowOrchestrator(service=service, quota=quota),
            exporter=ExportService(session_dir),
        )

    return new_session


def build_app(
    config: AppConfig, session_factory: Optional[Callable[[], StudioSession]] = None
) -> Any:
    """Compose and return the Gradio application."""
    if gr is None:
        raise RuntimeError("Gradio is not installed; install the project dependencies first.")

    new_session = session_factory or build_session_factory(config)
    callbacks_map = build_callbacks(config)
    ratio_choices = [ratio.value for ratio in AspectRatio]

    with gr.Blocks(title="Gemini Image Studio") as demo:
        # called once per browser session
        session = gr.State(value=new_session)
        gr.Markdown("## Gemini Image Studio")
        quota_label = gr.Markdown()

        with gr.Row():
            # Step 1: inputs
            with gr.Column():
                gr.Markdown("### Step 1: Create")
                source_image = gr.Image(
                    label="Original (optional, upload to edit)",
                    type="filepath",
                    sources=["upload"],
                )
                prompt = gr.Textbox(
                    label="Prompt",
                    lines=3,
                    placeholder="e.g. 'Add a retro filter', 'A lighthouse at dusk'",
                )
                negative = gr.Textbox(
                    label="Negative prompt (optional)",
                    lines=2,
                    placeholder="e.g. people, cars, neon",
                )
                aspect_ratio = gr.Radio(
                    label="Aspect ratio",
                    choices=ratio_choices,
                    value=AspectRatio.SQUARE.value,
                )
                generate_btn = gr.Button("Generate Image", variant="primary")

            # Step 2: result
            with gr.Column():
                gr.Markdown("### Step 2: Result")
                generated_image = gr.Image(label="Generated", type="filepath", interactive=False)
                status = gr.Markdown("Ready.")
                with gr.Row():
                    retry_btn = gr.Button("Retry")
                    extend_btn = gr.Button("Extend")
                rating = gr.Radio(
                    label="Rate the result",
                    choices=["1", "2", "3", "4", "5"],
                    value=None,
                )
                download = gr.File(label="Download", interactive=False)

        with gr.Row():
            gr.Markdown("### History")
            clear_btn = gr.Button("Clear history", size="sm")
        history = gr.Gallery(label="History", columns=6, height="auto")
        reset_btn = gr.Button("Reset everything", variant="stop")
        # Receives the result of the browser confirm() dialog.
        confirmed = gr.Checkbox(value=False, visible=False)

        outputs = [
            source_image,
            generated_image,
            prompt,
            negative,
            aspect_ratio,
            rating,
            status,
            history,
            quota_label,
            download,
        ]

        demo.load(fn=callbacks_map["on_load"], inputs=[session], outputs=outputs)
        source_image.upload(
            fn=callbacks_map["on_upload"], inputs=[session, source_image], outputs=outputs
        )
        source_image.clear(fn=callbacks_map["on_remove_image"], inputs=[session], outputs=outputs)
        generate_btn.click(
            fn=callbacks_map["on_generate"],
            inputs=[session, prompt, negative, aspect_ratio],
            outputs=outputs,
        )
        retry_btn.click(fn=callbacks_map["on_retry"], inputs=[session], outputs=outputs)
        extend_btn.click(
            fn=callbacks_map["on_extend"], inputs=[session, aspect_ratio], outputs=outputs
        )
        rating.input(fn=callbacks_map["on_rate"], inputs=[session, rating], outputs=outputs)
        clear_btn.click(
            fn=callbacks_map["on_clear_history"],
            inputs=[session, confirmed],
            outputs=outputs,
            js=CONFIRM_CLEAR_JS,
        )
        reset_btn.click(
            fn=callbacks_map["on_reset"],
            inputs=[session, confirmed],
            outputs=outputs,
            js=CONFIRM_RESET_JS,
        )

    return demo
