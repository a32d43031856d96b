from __future__ import annotations

class DprLabError(RuntimeError):
    """Raised for caller misuse that has no sensible fallback."""

class UnknownWeaponError(DprLabError):
    def __init__(self, weapon_id: str):
        super().__init__(f"Invalid weapon: {weapon_id}")
        self.weapon_id = weapon_id

class UnknownGoalError(DprLabError):
    def __init__(self, goal_id: str):
        super().__init__(f"Unknown optimization goal: {goal_id}")
        self.goal_id = goal_id

class InvalidTargetError(DprLabError):
    pass
