from __future__ import annotations

from statemachine import State, StateMachine

from wikiline.api.models import RoundPhase, RoundState


class RoundFSM(StateMachine):
    """FSM wrapper around RoundState.

    - phases: idle -> loading -> active -> completed, back to idle/loading on reset
    - demo mode is a flag on RoundState, not a phase.
    - the game store mutates state; the FSM only guards phase changes.
    """

    idle = State(RoundPhase.idle.value, value=RoundPhase.idle.value, initial=True)
    loading = State(RoundPhase.loading.value, value=RoundPhase.loading.value)
    active = State(RoundPhase.active.value, value=RoundPhase.active.value)
    completed = State(RoundPhase.completed.value, value=RoundPhase.completed.value)

    # A reset during an in-flight fetch re-enters loading with a newer epoch.
    fetch = idle.to(loading) | active.to(loading) | completed.to(loading) | loading.to.itself()
    # Events cached without starting a round.
    settle = loading.to(idle)
    begin_round = idle.to(active) | loading.to(active) | completed.to(active) | active.to.itself()
    finish = active.to(completed)
    # Load failure or demo exit: back to the intro.
    abandon = loading.to(idle) | active.to(idle) | completed.to(idle) | idle.to.itself()

    def __init__(self, state: RoundState):
        self.round = state
        super().__init__(start_value=state.phase.value)

    def sync_phase_to_model(self) -> None:
        self.round.phase = RoundPhase(str(self.current_state.value))
