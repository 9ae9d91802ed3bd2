"""
Execution package.

The per-vault round state machine.
"""

from vault_keeper.execution.round_state_machine import RoundStateMachine

__all__ = ["RoundStateMachine"]
