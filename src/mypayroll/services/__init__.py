"""Payroll run services."""

from mypayroll.services.state_machine import RunStateMachine, RunStatus, InvalidTransitionError
from mypayroll.services.pay_run_service import PayRunService
from mypayroll.services.locking_service import LockingService
from mypayroll.services.inputs_resolver import InputsResolver, ResolvedInputs
from mypayroll.services.reporting_service import ReportingService

__all__ = [
    "RunStateMachine",
    "RunStatus",
    "InvalidTransitionError",
    "PayRunService",
    "LockingService",
    "InputsResolver",
    "ResolvedInputs",
    "ReportingService",
]
