from secret_santa.services.draw import DrawFailure, DrawResult, can_perform_draw, perform_draw
from secret_santa.services.group_flow import GroupFlowError
from secret_santa.services.vault import AssignmentVault, DecryptionError, VaultConfigError

__all__ = [
    "AssignmentVault",
    "DecryptionError",
    "DrawFailure",
    "DrawResult",
    "GroupFlowError",
    "VaultConfigError",
    "can_perform_draw",
    "perform_draw",
]
