"""Gradio UI callback tests."""

from __future__ import annotations

import asyncio
import base64
import datetime
from pathlib import Path
from typing import Optional

from config.settings import AppConfig
from modules.errors import ServiceError
from modules.pipelines.request_builder import GenerationResult
from modules.services.export_service import ExportService
from modules.services.quota_service import QuotaTracker
from modules.services.storage_service import MemoryStorage
from modules.ui import callbacks
from modules.workflow.orchestrator import WorkflowOrchestrator

PNG_BYTES = b"\x89PNG-generated"
FIELD = {name: index for index, name in enumerate(callbacks.VIEW_FIELDS)}


class DummyImageService:
    """Stub image service returning a fixed PNG payload."""

    def __init__(self) -> None:
        self.error: Optional[Exception] = None
        self.calls: list[str] = []

    async def _result(self) -> GenerationResult:
        if self.error is not None:
            raise self.error
        return GenerationResult(base64.b64encode(PNG_BYTES).decode("ascii"), "image/png")

    async def create(self, prompt_text, negative_prompt_text, aspect_ratio):
        self.calls.append("create")
        return await self._result()

    async def edit(self, source_image, prompt_text, negative_prompt_text, aspect_ratio):
        self.calls.append("edit")
        return await self._result()


def make_session(
    config: AppConfig,
    service: DummyImageService,
    quota: QuotaTracker,
    name: str = "session",
) -> callbacks.StudioSession:
    orchestrator = WorkflowOrchestrator(
        service=service,
        quota=quota,
        clock=lambda: datetime.datetime(2024, 3, 9, 12, 0, 0),
    )
    return callbacks.StudioSession(orchestrator, ExportService(config.output_dir / name))


def build_callbacks(tmp_path: Path, service: DummyImageService | None = None):
    config = AppConfig(output_dir=tmp_path / "outputs", state_dir=tmp_path / "state")
    quota = QuotaTracker(MemoryStorage(), max_per_day=config.max_generations_per_day)
    session = make_session(config, service or DummyImageService(), quota)
    return callbacks.build_callbacks(config), session


def field(view, name):
    return view[FIELD[name]]


def test_on_load_renders_idle_view(tmp_path):
    cb, session = build_callbacks(tmp_path)

    view = cb["on_load"](session)

    assert len(view) == len(callbacks.VIEW_FIELDS)
    assert field(view, "generated_image") is None
    assert field(view, "aspect_ratio") == "1:1"
    assert "20/20" in field(view, "quota")
    assert field(view, "history") == []


def test_on_generate_creates_image_and_history(tmp_path):
    cb, session = build_callbacks(tmp_path)

    view = asyncio.run(cb["on_generate"](session, "a red fox", "", "16:9"))

    generated = field(view, "generated_image")
    assert generated is not None
    assert Path(generated).read_bytes() == PNG_BYTES
    assert field(view, "download") == generated
    assert "successfully" in field(view, "status")
    assert "19/20" in field(view, "quota")
    history = field(view, "history")
    assert len(history) == 1
    assert history[0][1].endswith("created-a-red-fox-20240309120000.png")


def test_on_generate_reports_validation_error(tmp_path):
    cb, session = build_callbacks(tmp_path)

    view = asyncio.run(cb["on_generate"](session, "   ", "", "1:1"))

    assert "Please enter a prompt." in field(view, "status")
    assert field(view, "generated_image") is None
    assert "20/20" in field(view, "quota")


def test_on_generate_reports_service_error(tmp_path):
    service = DummyImageService()
    service.error = ServiceError("Failed to generate image: quota project missing")
    cb, session = build_callbacks(tmp_path, service)

    view = asyncio.run(cb["on_generate"](session, "a fox", "", "1:1"))

    assert "quota project missing" in field(view, "status")
    assert field(view, "history") == []


def test_on_upload_then_generate_edits(tmp_path):
    service = DummyImageService()
    cb, session = build_callbacks(tmp_path, service)
    upload = tmp_path / "cat.png"
    upload.write_bytes(b"cat")

    view = cb["on_upload"](session, str(upload))
    assert field(view, "source_image") is not None
    assert field(view, "prompt") == ""

    view = asyncio.run(cb["on_generate"](session, "add snow", "", "1:1"))

    assert service.calls == ["edit"]
    assert field(view, "history")[0][1].endswith("edited-cat.png")


def test_on_upload_rejects_non_image(tmp_path):
    cb, session = build_callbacks(tmp_path)
    orchestrator = session.orchestrator
    upload = tmp_path / "notes.txt"
    upload.write_text("hello", encoding="utf-8")

    view = cb["on_upload"](session, str(upload))

    assert "Please select an image file." in field(view, "status")
    assert orchestrator.state.source_image is None


def test_on_extend_chains_result(tmp_path):
    service = DummyImageService()
    cb, session = build_callbacks(tmp_path, service)
    orchestrator = session.orchestrator
    asyncio.run(cb["on_generate"](session, "a red fox", "", "1:1"))

    view = asyncio.run(cb["on_extend"](session, "1:1"))

    assert service.calls == ["create", "edit"]
    assert field(view, "source_image") is not None
    assert orchestrator.state.source_image.display_name.startswith("extended-created-a-red-fox")
    assert len(field(view, "history")) == 2


def test_on_rate_updates_rating(tmp_path):
    cb, session = build_callbacks(tmp_path)
    asyncio.run(cb["on_generate"](session, "a fox", "", "1:1"))

    view = cb["on_rate"](session, "4")

    assert field(view, "rating") == "4"


def test_clear_history_and_reset_need_confirmation(tmp_path):
    cb, session = build_callbacks(tmp_path)
    orchestrator = session.orchestrator
    asyncio.run(cb["on_generate"](session, "a fox", "cars", "9:16"))

    view = cb["on_clear_history"](session, False)
    assert len(field(view, "history")) == 1

    view = cb["on_clear_history"](session, True)
    assert field(view, "history") == []
    assert field(view, "generated_image") is not None

    view = cb["on_reset"](session, False)
    assert field(view, "prompt") == "a fox"

    view = cb["on_reset"](session, True)
    assert field(view, "prompt") == ""
    assert field(view, "negative_prompt") == ""
    assert field(view, "aspect_ratio") == "1:1"
    assert field(view, "generated_image") is None
    assert orchestrator.history_entries() == ()


def test_sessions_do_not_share_images_or_history(tmp_path):
    config = AppConfig(output_dir=tmp_path / "outputs", state_dir=tmp_path / "state")
    quota = QuotaTracker(MemoryStorage(), max_per_day=config.max_generations_per_day)
    first = make_session(config, DummyImageService(), quota, name="first")
    second = make_session(config, DummyImageService(), quota, name="second")
    cb = callbacks.build_callbacks(config)

    asyncio.run(cb["on_generate"](first, "a red fox", "", "1:1"))
    view = cb["on_load"](second)

    assert field(view, "generated_image") is None
    assert field(view, "prompt") == ""
    assert field(view, "history") == []
    assert "19/20" in field(view, "quota")


def test_cleared_entries_are_removed_from_disk(tmp_path):
    cb, session = build_callbacks(tmp_path)
    view = asyncio.run(cb["on_generate"](session, "a fox", "", "1:1"))
    history_path = Path(field(view, "history")[0][0])
    generated_path = Path(field(view, "generated_image"))

    again = cb["on_load"](session)
    assert field(again, "history")[0][0] == str(history_path)

    cb["on_clear_history"](session, True)
    assert not history_path.exists()
    assert generated_path.exists()

    cb["on_reset"](session, True)
    assert not generated_path.exists()
    assert session.exporter.exported_keys() == ()
