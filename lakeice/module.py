"""Base class for all modules in LakeIce."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lakeice.config import ModelConfig


class Module(ABC):
    """Base class for all modules."""

    def __init__(self, config: ModelConfig) -> None:
        """Initialize the module.

        Args:
            config: The model configuration.
        """
        self.config: ModelConfig = config

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the module. This method should be overridden by subclasses."""
        pass

    @abstractmethod
    def spinup(self) -> None:
        """Perform any necessary spinup for the module. This method should be overridden by subclasses."""
        pass

    @abstractmethod
    def step(self, *args: Any, **kwargs: Any) -> Any:
        """Perform a single time step of the module. This method should be overridden by subclasses."""
        pass
