"""Pure state machine for the generate / retry / extend workflow.

``reduce(state, event)`` returns the next state together with the effects the
caller has to carry out (dispatching a request, counting quota, updating the
history). Nothing in this module performs I/O, which keeps the transitions
testable without a front end or a network.

Phases::

    IDLE -> VALIDATING -> GENERATING -> SUCCEEDED | FAILED -> IDLE

Only IDLE and GENERATING are resting phases; ``outcome`` keeps the last
terminal phase for display.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from modules.errors import FormatError, QuotaExceededError, ValidationError, WorkflowError
from modules.pipelines.chain import ChainController
from modules.pipelines.request_builder import (
    DEFAULT_ASPECT_RATIO,
    AspectRatio,
    GenerationMode,
    GenerationRequest,
    GenerationRequestBuilder,
    GenerationResult,
    SourceImage,
)
from modules.services.history_service import HistoryEntry
from modules.utils.image_utils import build_image_reference, slugify

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED_MESSAGE = "Daily generation limit reached. Please try again tomorrow."
NOTHING_TO_RETRY_MESSAGE = "There is no previous request to retry."
BUSY_MESSAGE = "The previous generation is still finishing. Please wait a moment."
MAX_RATING = 5


class Phase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class WorkflowState:
    """Everything the front end shows for the current session."""

    phase: Phase = Phase.IDLE
    outcome: Optional[Phase] = None
    source_image: Optional[SourceImage] = None
    generated_image: Optional[str] = None
    generated_file_name: Optional[str] = None
    prompt: str = ""
    negative_prompt: str = ""
    aspect_ratio: AspectRatio = DEFAULT_ASPECT_RATIO
    error: Optional[str] = None
    rating: int = 0
    last_request: Optional[GenerationRequest] = None
    dispatch_id: int = 0

    @property
    def is_generating(self) -> bool:
        return self.phase is Phase.GENERATING

    @property
    def mode(self) -> GenerationMode:
        return GenerationMode.EDIT if self.source_image is not None else GenerationMode.CREATE


# Events ----------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class PromptChanged:
    text: str


@dataclass(slots=True, frozen=True)
class NegativePromptChanged:
    text: str


@dataclass(slots=True, frozen=True)
class AspectRatioChanged:
    value: Union[AspectRatio, str]


@dataclass(slots=True, frozen=True)
class RatingChanged:
    value: int


@dataclass(slots=True, frozen=True)
class ImageUploaded:
    image: SourceImage


@dataclass(slots=True, frozen=True)
class ImageRemoved:
    pass


@dataclass(slots=True, frozen=True)
class InputRejected:
    message: str


@dataclass(slots=True, frozen=True)
class GenerateRequested:
    quota_available: bool


@dataclass(slots=True, frozen=True)
class RetryRequested:
    quota_available: bool


@dataclass(slots=True, frozen=True)
class ExtendRequested:
    quota_available: bool


@dataclass(slots=True, frozen=True)
class GenerationSucceeded:
    dispatch_id: int
    result: GenerationResult
    entry_id: str
    completed_at: datetime.datetime


@dataclass(slots=True, frozen=True)
class GenerationFailed:
    dispatch_id: int
    message: str


@dataclass(slots=True, frozen=True)
class HistoryClearRequested:
    pass


@dataclass(slots=True, frozen=True)
class ResetRequested:
    pass


Event = Union[
    PromptChanged,
    NegativePromptChanged,
    AspectRatioChanged,
    RatingChanged,
    ImageUploaded,
    ImageRemoved,
    InputRejected,
    GenerateRequested,
    RetryRequested,
    ExtendRequested,
    GenerationSucceeded,
    GenerationFailed,
    HistoryClearRequested,
    ResetRequested,
]


# Effects ---------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class DispatchGeneration:
    request: GenerationRequest
    dispatch_id: int


@dataclass(slots=True, frozen=True)
class ConsumeQuota:
    pass


@dataclass(slots=True, frozen=True)
class AppendHistory:
    entry: HistoryEntry


@dataclass(slots=True, frozen=True)
class ClearHistory:
    pass


Effect = Union[DispatchGeneration, ConsumeQuota, AppendHistory, ClearHistory]


@dataclass(slots=True, frozen=True)
class Transition:
    state: WorkflowState
    effects: Tuple[Effect, ...] = field(default_factory=tuple)


_BUILDER = GenerationRequestBuilder()
_CHAIN = ChainController()


def output_file_name(request: GenerationRequest, completed_at: datetime.datetime) -> str:
    """Name used for downloads and history entries."""
    if request.mode is GenerationMode.EDIT and request.source_image is not None:
        return f"edited-{request.source_image.display_name}"
    stamp = completed_at.strftime("%Y%m%d%H%M%S")
    return f"created-{slugify(request.prompt_text)}-{stamp}.png"


def _fail(state: WorkflowState, message: str) -> WorkflowState:
    logger.info("Generation attempt failed: %s", message)
    return replace(state, phase=Phase.IDLE, outcome=Phase.FAILED, error=message)


def _begin(
    state: WorkflowState,
    quota_available: bool,
    make_request: Callable[[], GenerationRequest],
) -> Transition:
    logger.debug("Phase %s -> %s", state.phase.value, Phase.VALIDATING.value)
    try:
        request = make_request()
        if not quota_available:
            raise QuotaExceededError(QUOTA_EXCEEDED_MESSAGE)
    except WorkflowError as exc:
        return Transition(_fail(state, exc.message))

    dispatch_id = state.dispatch_id + 1
    next_state = replace(
        state,
        phase=Phase.GENERATING,
        outcome=None,
        error=None,
        generated_image=None,
        generated_file_name=None,
        rating=0,
        last_request=request,
        dispatch_id=dispatch_id,
    )
    logger.debug("Phase %s -> %s (dispatch %d)", Phase.VALIDATING.value, Phase.GENERATING.value, dispatch_id)
    return Transition(next_state, (DispatchGeneration(request, dispatch_id),))


def _build_from_state(state: WorkflowState, builder: GenerationRequestBuilder) -> GenerationRequest:
    return builder.build(
        state.prompt,
        state.negative_prompt,
        state.aspect_ratio,
        state.source_image,
    )


def _extend(
    state: WorkflowState,
    event: ExtendRequested,
    builder: GenerationRequestBuilder,
    chain: ChainController,
) -> Transition:
    if not event.quota_available:
        return Transition(_fail(state, QUOTA_EXCEEDED_MESSAGE))

    if state.source_image is not None:
        previous_name = state.source_image.display_name
    else:
        previous_name = state.generated_file_name or "image.png"
    try:
        step = chain.extend(state.generated_image or "", previous_name, state.aspect_ratio)
    except FormatError as exc:
        return Transition(_fail(state, exc.message))

    chained = replace(
        state,
        source_image=step.source_image,
        generated_image=None,
        generated_file_name=None,
        prompt=step.prompt,
        negative_prompt=step.negative_prompt,
        aspect_ratio=step.aspect_ratio,
    )
    return _begin(chained, True, lambda: _build_from_state(chained, builder))


def _succeed(state: WorkflowState, event: GenerationSucceeded) -> Transition:
    request = state.last_request
    if request is None:
        raise RuntimeError("Generation succeeded without a dispatched request")

    reference = build_image_reference(event.result.media_type, event.result.encoded_bytes)
    file_name = output_file_name(request, event.completed_at)
    entry = HistoryEntry(
        id=event.entry_id,
        image_reference=reference,
        file_name=file_name,
        created_at=event.completed_at.strftime("%Y-%m-%d %H:%M:%S"),
    )
    next_state = replace(
        state,
        phase=Phase.IDLE,
        outcome=Phase.SUCCEEDED,
        generated_image=reference,
        generated_file_name=file_name,
        error=None,
        rating=0,
    )
    return Transition(next_state, (ConsumeQuota(), AppendHistory(entry)))


def _is_current(state: WorkflowState, dispatch_id: int) -> bool:
    return state.is_generating and dispatch_id == state.dispatch_id


def reduce(
    state: WorkflowState,
    event: Event,
    builder: GenerationRequestBuilder = _BUILDER,
    chain: ChainController = _CHAIN,
) -> Transition:
    """Return the next state and the effects ``event`` calls for."""
    if isinstance(event, ResetRequested):
        return Transition(WorkflowState(dispatch_id=state.dispatch_id), (ClearHistory(),))
    if isinstance(event, HistoryClearRequested):
        return Transition(state, (ClearHistory(),))

    if isinstance(event, GenerationSucceeded):
        if not _is_current(state, event.dispatch_id):
            logger.warning("Dropping stale result for dispatch %d", event.dispatch_id)
            return Transition(state)
        return _succeed(state, event)
    if isinstance(event, GenerationFailed):
        if not _is_current(state, event.dispatch_id):
            logger.warning("Dropping stale failure for dispatch %d", event.dispatch_id)
            return Transition(state)
        return Transition(_fail(state, event.message))

    # Everything below is user input, which is read-only while a request is in flight.
    if state.is_generating:
        logger.info("Ignoring %s while a generation is in flight", type(event).__name__)
        return Transition(state)

    if isinstance(event, GenerateRequested):
        return _begin(state, event.quota_available, lambda: _build_from_state(state, builder))
    if isinstance(event, RetryRequested):
        last_request = state.last_request
        if last_request is None:
            return Transition(_fail(state, NOTHING_TO_RETRY_MESSAGE))
        return _begin(state, event.quota_available, lambda: last_request)
    if isinstance(event, ExtendRequested):
        return _extend(state, event, builder, chain)

    if isinstance(event, PromptChanged):
        return Transition(replace(state, prompt=event.text))
    if isinstance(event, NegativePromptChanged):
        return Transition(replace(state, negative_prompt=event.text))
    if isinstance(event, AspectRatioChanged):
        try:
            ratio = AspectRatio.parse(event.value)
        except ValidationError as exc:
            return Transition(replace(state, error=exc.message))
        return Transition(replace(state, aspect_ratio=ratio))
    if isinstance(event, RatingChanged):
        if state.generated_image is None or not 0 <= event.value <= MAX_RATING:
            return Transition(state)
        return Transition(replace(state, rating=event.value))
    if isinstance(event, ImageUploaded):
        if not event.image.media_type.startswith("image/"):
            return Transition(replace(state, error="Please select an image file."))
        return Transition(
            replace(
                state,
                source_image=event.image,
                generated_image=None,
                generated_file_name=None,
                prompt="",
                negative_prompt="",
                error=None,
                rating=0,
                outcome=None,
            )
        )
    if isinstance(event, ImageRemoved):
        return Transition(
            replace(
                state,
                source_image=None,
                generated_image=None,
                generated_file_name=None,
                rating=0,
            )
        )
    if isinstance(event, InputRejected):
        return Transition(replace(state, error=event.message))

    raise TypeError(f"Unknown workflow event: {event!r}")
