# core/types/status.py
"""
Row and poll-loop states.
This module should not import from other claimloop modules.
"""

from enum import Enum


class RowState(Enum):
    """Lifecycle of a task row as seen by the engine"""

    ELIGIBLE = 'eligible'  # result is NULL and nobody holds a live claim.

    CLAIMED = 'claimed'  # owned by a worker whose lease has not expired.

    DONE = 'done'  # result is set; never claimed again.

    @property
    def is_terminal(self) -> bool:
        return self is RowState.DONE


class PollState(Enum):
    """Poll loop state: IDLE -> CLAIMING -> EXECUTING -> IDLE, forever"""

    IDLE = 'idle'
    CLAIMING = 'claiming'
    EXECUTING = 'executing'
