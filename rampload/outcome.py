"""Result of a single request attempt."""
from dataclasses import dataclass
from enum import Enum
from typing import Union

ERROR_LABEL = "error"


class FailureKind(Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class Success:
    """An HTTP response arrived; any status code counts."""
    status_code: int
    latency_ms: float

    @property
    def status_label(self) -> str:
        return str(self.status_code)


@dataclass(frozen=True)
class Failure:
    """No response: the request timed out or failed at the transport level."""
    kind: FailureKind

    @property
    def status_label(self) -> str:
        return ERROR_LABEL


Outcome = Union[Success, Failure]
