import pytest

from secureflash.errors import SecurityViolation, StepFailed
from secureflash.executor import Expectation, StepExecutor
from secureflash.programmers import CommandResult
from secureflash.run_status import OverallResult, Step, StepStatus

from conftest import run_async


def _returning(code, output=''):
    async def action():
        return CommandResult(['x'], code, output)
    return action


def test_success_marks_ok(run):
    executor = StepExecutor(run)
    result = run_async(executor.execute(Step.UNLOCK, _returning(0, 'unlocked')))
    assert result.output == 'unlocked'
    assert run.status(Step.UNLOCK) == StepStatus.OK
    assert run.result is None


def test_failure_aborts_with_step_reason(run):
    executor = StepExecutor(run)
    with pytest.raises(StepFailed) as exc:
        run_async(executor.execute(Step.MASS_ERASE, _returning(1)))
    assert exc.value.step == Step.MASS_ERASE
    assert run.status(Step.MASS_ERASE) == StepStatus.ERROR
    assert run.result == OverallResult.ERROR
    assert run.error_reason == "Mass erase failed"
    assert run.error_location == "step:mass_erase"


def test_verify_rejects_successful_call(run):
    executor = StepExecutor(run)
    with pytest.raises(StepFailed):
        run_async(executor.execute(Step.QR_READ, _returning(0, 'no code here'),
                                   verify=lambda r: 'QR' in r.output))
    assert run.error_reason == "QR read failed or code not found"


def test_verify_accepts(run):
    executor = StepExecutor(run)
    run_async(executor.execute(Step.QR_READ, _returning(0, 'QR: 1'), verify=lambda r: 'QR' in r.output))
    assert run.status(Step.QR_READ) == StepStatus.OK


def test_blocked_call_failing_is_ok(run):
    executor = StepExecutor(run)
    run_async(executor.execute(Step.TOKEN_DUMP_POST, _returning(1, 'locked'), expect=Expectation.BLOCKED))
    assert run.status(Step.TOKEN_DUMP_POST) == StepStatus.OK
    assert run.result is None


def test_blocked_call_succeeding_is_security_violation(run, caplog, capsys):
    executor = StepExecutor(run)
    with pytest.raises(SecurityViolation):
        run_async(executor.execute(Step.TOKEN_DUMP_POST, _returning(0, 'TOKEN: 00'),
                                   expect=Expectation.BLOCKED))
    assert run.status(Step.TOKEN_DUMP_POST) == StepStatus.ERROR
    assert run.error_reason == "Post-lock token access accessible (expected blocked)"
    assert "ACCESSIBLE (FAILED/unexpected!!!)" in caplog.text
    assert "TOKEN: 00" in capsys.readouterr().out
    assert "TOKEN: 00" not in caplog.text


def test_skip_only_allowed_for_lock(run):
    executor = StepExecutor(run)
    executor.skip(Step.LOCK_DEBUG, "service mode")
    assert run.status(Step.LOCK_DEBUG) == StepStatus.SKIPPED
    with pytest.raises(ValueError):
        executor.skip(Step.UNLOCK, "service mode")
