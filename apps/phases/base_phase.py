"""Base class for pipeline phases that run preliminary sessions.

Design Principles:
    - All phases inherit from BasePhase
    - Phases read prior outputs from the PipelineState snapshot, never mutate it
    - Each structured task is one PreliminaryController session
    - Session failures surface as PhaseError; the phase decides skip vs. abort
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, Mapping, Optional, TypeVar

from libs.core.config import get_settings
from libs.core.exceptions import InterventionRequired, PhaseError
from libs.core.models import PipelineState
from libs.llm.client import LLMClient
from libs.llm.conversation import FunctionCallConverser
from libs.preliminary.collection import ItemSource
from libs.preliminary.controller import CompleteValidator, Converse, PreliminaryController
from libs.preliminary.events import EventDispatcher
from libs.preliminary.kinds import PreliminaryKind
from libs.preliminary.requests import CompleteRequest

logger = logging.getLogger(__name__)

# Generic type for phase result
T = TypeVar("T")
C = TypeVar("C", bound=CompleteRequest)


class BasePhase(ABC, Generic[T]):
    """Abstract base class for pipeline phases.

    Each phase:
    1. Reads outputs of earlier phases from the state snapshot
    2. Opens one preliminary session per structured task
    3. Converses through the function-call adapter (or an injected converser)
    4. Returns its result
    """

    # Event source of the phase's sessions
    SOURCE: str = "base"

    # Kinds offered to the phase's sessions
    KINDS: tuple[PreliminaryKind, ...] = tuple(PreliminaryKind)

    SYSTEM_PROMPT: str = ""

    def __init__(
        self,
        state: PipelineState,
        dispatcher: Optional[EventDispatcher] = None,
        client: Optional[LLMClient] = None,
        converse: Optional[Converse] = None,
    ):
        """
        Initialize phase.

        Args:
            state: Snapshot of earlier phases' outputs
            dispatcher: Event sink shared by the phase's sessions
            client: LLM client for the default converser
            converse: Replaces the LLM converser entirely (tests, replays)
        """
        self.state = state
        self.settings = get_settings()
        self.dispatcher = dispatcher or EventDispatcher()
        self._client = client
        self._converse = converse

    @abstractmethod
    async def execute(self, **kwargs) -> T:
        """
        Execute the phase logic.

        Raises:
            PhaseError: On phase execution failure
            InterventionRequired: On unrecoverable errors
        """
        pass

    def create_controller(
        self,
        complete_model: type[C],
        kinds: Optional[Iterable[PreliminaryKind]] = None,
        available: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
        disclosed: Optional[Mapping[PreliminaryKind, ItemSource]] = None,
        **overrides: Any,
    ) -> PreliminaryController[C]:
        """New session over the phase's state snapshot."""
        return PreliminaryController(
            source=self.SOURCE,
            kinds=self.KINDS if kinds is None else kinds,
            state=self.state,
            complete_model=complete_model,
            available=available,
            disclosed=disclosed,
            dispatcher=self.dispatcher,
            **overrides,
        )

    def create_converser(
        self,
        instructions: Optional[list[dict[str, str]]] = None,
        prompt_cache_key: Optional[str] = None,
    ) -> Converse:
        if self._converse is not None:
            return self._converse
        return FunctionCallConverser(
            system_prompt=self.SYSTEM_PROMPT,
            instructions=instructions,
            client=self._client,
            prompt_cache_key=prompt_cache_key,
        )

    async def run_session(
        self,
        controller: PreliminaryController[C],
        converse: Converse,
        validate_complete: Optional[CompleteValidator] = None,
    ) -> C:
        """
        Run one session to completion.

        Raises:
            PhaseError: wrapping whatever ended the session
            InterventionRequired: passed through untouched
        """
        try:
            return await controller.orchestrate(converse, validate_complete)
        except (PhaseError, InterventionRequired):
            raise
        except Exception as e:
            logger.warning(f"[{self.SOURCE}] session {controller.source_id} failed: {e}")
            raise PhaseError(
                f"Session failed in {self.SOURCE}: {e}",
                phase=self.SOURCE,
                context={
                    "source_id": controller.source_id,
                    "trial": controller.trial,
                    "error": str(e),
                },
            ) from e
