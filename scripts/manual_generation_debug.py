"""One-off script for debugging create + extend against the real Gemini API."""

import asyncio
from pathlib import Path

from config.settings import load_config
from modules.pipelines.gemini_service import GeminiImageService
from modules.services.export_service import ExportService
from modules.services.quota_service import QuotaTracker
from modules.services.storage_service import MemoryStorage
from modules.utils.logging import setup_logging
from modules.workflow.orchestrator import WorkflowOrchestrator


async def run() -> None:
    # 1. Real config and service; quota kept in memory so debugging does not eat the daily budget
    config = load_config()
    setup_logging(config)
    orchestrator = WorkflowOrchestrator(
        service=GeminiImageService(config),
        quota=QuotaTracker(MemoryStorage(), max_per_day=config.max_generations_per_day),
    )
    exporter = ExportService(Path("debug_outputs"))

    # 2. Create from text
    orchestrator.set_prompt("A quiet harbour town at dawn, fishing boats leaving the pier")
    orchestrator.set_negative_prompt("people")
    orchestrator.set_aspect_ratio("16:9")
    state = await orchestrator.generate()
    print("create:", state.outcome, state.error or "")
    if state.error or not state.generated_image:
        return
    print("saved:", exporter.save_image(state.generated_image, state.generated_file_name or "create.png"))

    # 3. Extend once from the created image
    state = await orchestrator.extend()
    print("extend:", state.outcome, state.error or "")
    if state.generated_image:
        print("saved:", exporter.save_image(state.generated_image, state.generated_file_name or "extend.png"))

    print("history entries:", len(orchestrator.history_entries()))


if __name__ == "__main__":
    asyncio.run(run())
