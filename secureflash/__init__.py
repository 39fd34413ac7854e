"""Secure Boot Flasher: provisioning workflow for secure Z-Wave boards.

Key components:
- ProvisioningWorkflow: Runs the ordered unlock-to-GBL step sequence
- StepExecutor: Records each step's outcome and aborts on the first failure
- AuditLedger: Writes exactly one CSV row and text block per run
- resolve_identity: Derives a unique board label from the ledger
- Run: The record of one provisioning attempt
"""

from .errors import (
    InvalidTransition,
    MissingKeysError,
    PreconditionError,
    ProvisioningError,
    SecurityViolation,
    StepFailed,
)
from .executor import Expectation, StepExecutor
from .identity import BoardIdentity, resolve_identity
from .ledger import AuditLedger
from .run_status import OverallResult, Run, Step, StepStatus
from .workflow import ProvisioningWorkflow, ServiceMode

__version__ = '1.0.0'

__all__ = [
    'AuditLedger',
    'BoardIdentity',
    'Expectation',
    'InvalidTransition',
    'MissingKeysError',
    'OverallResult',
    'PreconditionError',
    'ProvisioningError',
    'ProvisioningWorkflow',
    'Run',
    'SecurityViolation',
    'ServiceMode',
    'Step',
    'StepExecutor',
    'StepFailed',
    'StepStatus',
    'resolve_identity',
]
