from abc import ABC, abstractmethod
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict

from .types import Action, ActionType


class ActionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: str
    rule_id: str
    attempt: int = 1
    dry_run: bool = False
    # seconds left in the action's timeout budget when the attempt started
    timeout_seconds: Optional[float] = None


class ActionHandler(ABC):
    """
    Performs the side effect of one or more action types (provisioning
    connectors, notification services, schedulers).
    """

    @abstractmethod
    def supported_types(self) -> Set[ActionType]:
        """Return the set of action types this handler performs."""
        pass

    @abstractmethod
    def execute(self, action: Action, context: ActionContext) -> None:
        """
        Apply the action. Raise TransientActionError for failures worth
        retrying; any other exception fails the action immediately.
        """
        pass

    def simulate(self, action: Action, context: ActionContext) -> Optional[float]:
        """
        Dry-run hook: return the expected duration in seconds, or None to use
        the configured estimate. May raise TransientActionError to rehearse
        the retry path.
        """
        return None
