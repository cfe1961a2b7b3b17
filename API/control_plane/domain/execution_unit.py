from dataclasses import dataclass
from enum import Enum


class UnitState(str, Enum):
    QUEUED = "Queued"
    LOCKED = "Locked"
    RUNNING = "Running"
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"


FINAL_UNIT_STATES = frozenset({UnitState.COMPLETE, UnitState.CANCELLED})


@dataclass
class ExecutionUnit:
    uuid: str
    state: UnitState
    priority: int = 0
    log: str | None = None     # content-address handle of the log, once produced
    output: str | None = None  # content-address handle of the output, once produced

    @property
    def is_final(self) -> bool:
        return self.state in FINAL_UNIT_STATES

    def handle_for(self, slot: str) -> str | None:
        return {"log": self.log, "output": self.output}[slot]
