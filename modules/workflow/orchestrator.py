"""Async driver that runs the workflow state machine against real services."""

from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable, Optional

from modules.errors import ServiceError
from modules.pipelines.chain import ChainController
from modules.pipelines.gemini_service import GenerationService
from modules.pipelines.request_builder import (
    AspectRatio,
    GenerationMode,
    GenerationRequest,
    GenerationRequestBuilder,
    GenerationResult,
    SourceImage,
)
from modules.services.history_service import HistoryEntry, HistoryLedger
from modules.services.quota_service import QuotaTracker
from modules.workflow.state import (
    BUSY_MESSAGE,
    AppendHistory,
    AspectRatioChanged,
    ClearHistory,
    ConsumeQuota,
    DispatchGeneration,
    Effect,
    Event,
    ExtendRequested,
    GenerateRequested,
    GenerationFailed,
    GenerationSucceeded,
    HistoryClearRequested,
    ImageRemoved,
    ImageUploaded,
    InputRejected,
    NegativePromptChanged,
    PromptChanged,
    RatingChanged,
    ResetRequested,
    RetryRequested,
    WorkflowState,
    reduce,
)

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Coordinate quota, request building, the image service and history.

    All methods run on one event loop. The only await point is the service
    call. While it is outstanding, further generate/retry/extend calls return
    without dispatching. This holds after a Reset too: the reset state is
    IDLE, but ``_in_flight`` is only cleared once the outstanding call returns.
    """

    def __init__(
        self,
        service: GenerationService,
        quota: QuotaTracker,
        history: Optional[HistoryLedger] = None,
        builder: Optional[GenerationRequestBuilder] = None,
        chain: Optional[ChainController] = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ) -> None:
        self.service = service
        self.quota = quota
        self.history = history if history is not None else HistoryLedger()
        self.builder = builder or GenerationRequestBuilder()
        self.chain = chain or ChainController()
        self._clock = clock
        self._state = WorkflowState()
        self._in_flight: Optional[int] = None

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def in_flight(self) -> bool:
        """True while a service call is outstanding, even if its result will be dropped."""
        return self._in_flight is not None

    def remaining_quota(self) -> int:
        return self.quota.remaining()

    def history_entries(self) -> tuple[HistoryEntry, ...]:
        return self.history.entries()

    # Input editing -------------------------------------------------------------
    def set_prompt(self, text: str) -> WorkflowState:
        return self._dispatch(PromptChanged(text or ""))

    def set_negative_prompt(self, text: str) -> WorkflowState:
        return self._dispatch(NegativePromptChanged(text or ""))

    def set_aspect_ratio(self, value: AspectRatio | str) -> WorkflowState:
        return self._dispatch(AspectRatioChanged(value))

    def set_rating(self, value: int) -> WorkflowState:
        return self._dispatch(RatingChanged(int(value)))

    def upload_image(self, image: SourceImage) -> WorkflowState:
        return self._dispatch(ImageUploaded(image))

    def reject_input(self, message: str) -> WorkflowState:
        return self._dispatch(InputRejected(message))

    def remove_image(self) -> WorkflowState:
        return self._dispatch(ImageRemoved())

    def clear_history(self, confirmed: bool = False) -> WorkflowState:
        """Empty the history; does nothing unless the user confirmed."""
        if confirmed:
            self._dispatch(HistoryClearRequested())
        return self._state

    def reset(self, confirmed: bool = False) -> WorkflowState:
        """Clear images, inputs, rating, error and history after confirmation."""
        if confirmed:
            self._dispatch(ResetRequested())
        return self._state

    # Generation ----------------------------------------------------------------
    async def generate(self) -> WorkflowState:
        return await self._run(GenerateRequested(self._quota_available()))

    async def retry(self) -> WorkflowState:
        """Re-run the last request unchanged."""
        return await self._run(RetryRequested(self._quota_available()))

    async def extend(self) -> WorkflowState:
        """Feed the generated image back as the input and generate once."""
        return await self._run(ExtendRequested(self._quota_available()))

    def _quota_available(self) -> bool:
        if self._state.is_generating or self.in_flight:
            # the event is ignored anyway; skip the storage read
            return False
        return self.quota.check_available()

    async def _run(self, event: Event) -> WorkflowState:
        if self._in_flight is not None and not self._state.is_generating:
            # reset while a call was outstanding; the old call still owns the service
            logger.info(
                "Ignoring %s until dispatch %d returns", type(event).__name__, self._in_flight
            )
            return self._dispatch(InputRejected(BUSY_MESSAGE))

        effects = self._apply(event)
        dispatch = next((e for e in effects if isinstance(e, DispatchGeneration)), None)
        if dispatch is None:
            return self._state

        self._in_flight = dispatch.dispatch_id
        try:
            result = await self._call_service(dispatch.request)
        except ServiceError as exc:
            self._apply(GenerationFailed(dispatch.dispatch_id, exc.message))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error from the image service")
            message = str(exc) or "An unexpected error occurred."
            self._apply(GenerationFailed(dispatch.dispatch_id, message))
        else:
            completed_at = self._clock()
            entry_id = f"{completed_at.isoformat()}-{dispatch.dispatch_id}"
            self._apply(GenerationSucceeded(dispatch.dispatch_id, result, entry_id, completed_at))
        finally:
            self._in_flight = None
        return self._state

    async def _call_service(self, request: GenerationRequest) -> GenerationResult:
        logger.info(
            "Dispatching %s request (aspect %s)", request.mode.value, request.aspect_ratio.value
        )
        if request.mode is GenerationMode.EDIT:
            if request.source_image is None:
                raise RuntimeError("Edit request built without a source image")
            return await self.service.edit(
                request.source_image,
                request.prompt_text,
                request.negative_prompt_text,
                request.aspect_ratio,
            )
        return await self.service.create(
            request.prompt_text, request.negative_prompt_text, request.aspect_ratio
        )

    # Effects -------------------------------------------------------------------
    def _dispatch(self, event: Event) -> WorkflowState:
        effects = self._apply(event)
        if any(isinstance(e, DispatchGeneration) for e in effects):
            raise RuntimeError("Generation events must go through generate/retry/extend")
        return self._state

    def _apply(self, event: Event) -> tuple[Effect, ...]:
        transition = reduce(self._state, event, self.builder, self.chain)
        self._state = transition.state
        self._perform(transition.effects)
        return transition.effects

    def _perform(self, effects: Iterable[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, ConsumeQuota):
                self.quota.consume()
            elif isinstance(effect, AppendHistory):
                self.history.append(effect.entry)
            elif isinstance(effect, ClearHistory):
                self.history.clear()
                logger.info("History cleared")
