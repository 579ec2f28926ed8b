"""Pydantic schemas for counter snapshots and WebSocket frames."""

from typing import Literal

from pydantic import BaseModel

from eduverse.counters.live import CounterPhase, CounterState


class CounterRead(BaseModel):
    name: str
    school_id: str
    value: int


class CounterFrame(BaseModel):
    """One push to a WebSocket client."""

    type: Literal["counter"] = "counter"
    name: str
    value: int
    loading: bool
    phase: CounterPhase

    @classmethod
    def from_state(cls, name: str, state: CounterState) -> "CounterFrame":
        return cls(name=name, value=state.value, loading=state.is_loading, phase=state.phase)
