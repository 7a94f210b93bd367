from .inactivity import InactivitySweeper, SweepResult

__all__ = [
    "InactivitySweeper",
    "SweepResult",
]
