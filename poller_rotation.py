# poller_rotation.py

import logging
from typing import Sequence

from data_models import RotationState


class CredentialRotator:
    """
    Round-robin over ``[primary, *helpers]``. Helpers only multiply the quote
    polling rate; they never confirm offers.
    """

    def __init__(self, pollers: Sequence, state: RotationState):
        if len(pollers) != state.size:
            raise ValueError(f"Rotation sized for {state.size} pollers but {len(pollers)} were given")
        self.pollers = list(pollers)
        self.state = state
        self.logger = logging.getLogger(__name__)

    @property
    def index(self) -> int:
        return self.state.index

    def next(self):
        """Poller for the upcoming cycle. Does not move the index."""
        return self.pollers[self.state.index]

    def advance(self) -> int:
        self.state.index = (self.state.index + 1) % self.state.size
        self.logger.debug(f"next poller {self.state.index}")
        return self.state.index

    def reset_to_primary(self) -> None:
        self.state.index = 0
