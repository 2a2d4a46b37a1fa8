"""Common agent interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class Agent(ABC, Generic[InputT, OutputT]):
    """Single-step unit of the approval workflow: one payload in, one result out."""

    @abstractmethod
    def run(self, payload: InputT) -> OutputT:
        """Process ``payload`` and return the step's result."""
