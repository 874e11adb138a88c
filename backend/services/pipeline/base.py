"""Abstract base class for all pipeline stage services."""

from abc import ABC, abstractmethod
from typing import Any
import logging

logger = logging.getLogger(__name__)


class BaseStageService(ABC):
    """Base class for assessment pipeline stages.

    Subclasses must implement:
        - stage_name: identifier used in logs
        - load(): prepare read-only state derived from reference data
        - predict(**kwargs): run the stage and return its typed schema
    """

    stage_name: str = ""
    _loaded: bool = False

    @abstractmethod
    def load(self) -> None:
        """Prepare derived reference data. Called once, lazily."""

    @abstractmethod
    def predict(self, **kwargs: Any) -> Any:
        """Run the stage. Returns a Pydantic schema defined per stage."""

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def ensure_loaded(self) -> None:
        """Load stage state if not already loaded."""
        if not self._loaded:
            logger.info("Loading stage: %s", self.stage_name)
            self.load()
            self._loaded = True
            logger.info("Stage ready: %s", self.stage_name)
