import argparse
import os

import pytest

from secureflash import cli
from secureflash.ledger import AuditLedger
from secureflash.run_status import Run, Step, StepStatus
from secureflash.settings import Settings
from secureflash.workflow import ServiceMode

from conftest import FakeProgrammer, run_async, write_ledger


class Answers:
    """Scripted operator input."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {prompt}")
        return self.answers.pop(0)


@pytest.fixture
def commander_exe(tmp_path):
    path = tmp_path / 'bin' / 'commander'
    path.parent.mkdir()
    path.write_text('#!/bin/sh\nexit 0\n')
    path.chmod(0o755)
    return path


@pytest.fixture
def settings(tmp_path, commander_exe):
    return Settings(str(tmp_path / 'secureflash.json'), environ={'COMMANDER': str(commander_exe)})


@pytest.fixture
def bench(monkeypatch):
    """Routes programmer creation to a fake and keeps atexit clean."""
    state = {'programmer': FakeProgrammer()}
    monkeypatch.setattr(cli, 'create_programmer', lambda type_id, **kwargs: state['programmer'])
    monkeypatch.setattr('secureflash.ledger.atexit.register', lambda *a, **kw: None)
    return state


def _args(board_id='42', menu=False):
    return argparse.Namespace(board_id=board_id, menu=menu, settings=None, workdir=None, verbose=False)


def _ledger(workdir):
    return AuditLedger(workdir / 'flash_logs')


def _provision(args, settings, workdir, answers):
    return run_async(cli.provision(args, settings, workdir, ask=answers))


# Operator choices

def test_select_probe_single():
    assert cli.select_probe(['440123456'], Answers()) == '440123456'


def test_select_probe_none():
    assert cli.select_probe([], Answers()) is None


def test_select_probe_reprompts(capsys):
    answers = Answers('x', '5', '2')
    assert cli.select_probe(['111', '222', '333'], answers) == '222'
    assert len(answers.prompts) == 3


def test_select_version_defaults_to_latest():
    assert cli.select_version(['0.0.12', '0.0.9'], Answers('')) == '0.0.12'


def test_select_version_by_number():
    answers = Answers('abc', '9', '2')
    assert cli.select_version(['0.0.12', '0.0.9'], answers) == '0.0.9'
    assert len(answers.prompts) == 3


def test_select_variant_has_no_default():
    answers = Answers('', 'd', 'b')
    assert cli.select_variant(['test', 'staging', 'prod'], answers) == 'staging'
    assert answers.prompts[0] == "Choose variant [A/B/C]: "


@pytest.mark.parametrize('answer, expected', [
    ('1', ServiceMode.ERASE_ONLY),
    ('2', ServiceMode.NO_LOCK),
    ('q', None),
    ('', None),
])
def test_service_menu(answer, expected):
    assert cli.service_menu(Answers(answer)) == expected


def test_service_menu_unknown():
    with pytest.raises(ValueError):
        cli.service_menu(Answers('7'))


# Provisioning

def test_provision_success(workdir, settings, bench, capsys):
    answers = Answers('first article', '', 'A')
    code = _provision(_args(), settings, workdir, answers)
    assert code == 0

    (row,) = list(_ledger(workdir).rows())
    assert row.board == '42'
    assert row.version == '0.0.12'
    assert row.variant == 'test'
    assert row.update_version == '0.0.14'
    assert row.note == 'first article'
    assert row.result == 'COMPLETE'
    assert row.dsk == '15253-54554-14243-44453-13233-34353-63738-39303'
    assert set(row.steps.values()) == {'OK'}
    assert bench['programmer'].calls[-1] == 'reset_adapter'

    out = capsys.readouterr().out
    assert 'Z-WAVE QR & DSK' in out
    assert 'Board 42: COMPLETE' in out


def test_provision_duplicate_board_gets_suffix(workdir, settings, bench):
    write_ledger(workdir / 'flash_logs' / 'flash_log.csv', ['42'])
    answers = Answers('', '', '', 'A')
    assert _provision(_args(), settings, workdir, answers) == 0
    assert "press Enter to use '42-2'" in answers.prompts[0]
    rows = list(_ledger(workdir).rows())
    assert [r.board for r in rows] == ['42', '42-2']
    assert rows[1].note == '(none entered)'


def test_provision_board_id_from_environment(workdir, settings, bench, monkeypatch):
    monkeypatch.setenv('BOARD_ID', '77')
    assert _provision(_args(board_id=None), settings, workdir, Answers('', '', 'A')) == 0
    (row,) = list(_ledger(workdir).rows())
    assert row.board == '77'


def test_provision_step_failure_is_recorded(workdir, settings, bench):
    bench['programmer'] = FakeProgrammer(failing=['mass_erase'])
    assert _provision(_args(), settings, workdir, Answers('', '', 'A')) == 1
    (row,) = list(_ledger(workdir).rows())
    assert row.result == 'ERROR'
    assert row.steps['Unlock'] == 'OK'
    assert row.steps['Mass Erase'] == 'ERROR'
    assert 'reset_adapter' not in bench['programmer'].calls
    assert 'Mass erase failed (at step:mass_erase)' in _ledger(workdir).text_path.read_text()


def test_provision_declined_key_generation(workdir, settings, bench):
    (workdir / 'aes_key.txt').unlink()
    answers = Answers('', '', 'A', 'n')
    assert _provision(_args(), settings, workdir, answers) == 1
    assert '[y/N]' in answers.prompts[-1]
    (row,) = list(_ledger(workdir).rows())
    assert row.result == 'ERROR'
    assert bench['programmer'].calls == ['list_probes']
    assert 'Missing key files (at precondition:key_files)' in _ledger(workdir).text_path.read_text()


def test_provision_accepts_temporary_keys(workdir, settings, bench):
    (workdir / 'aes_key.txt').unlink()
    assert _provision(_args(), settings, workdir, Answers('', '', 'A', 'y')) == 0
    assert (workdir / 'aes_key.txt').is_file()
    (row,) = list(_ledger(workdir).rows())
    assert row.result == 'COMPLETE'


def test_provision_missing_commander(workdir, tmp_path, bench):
    settings = Settings(str(tmp_path / 'secureflash.json'), environ={'COMMANDER': str(tmp_path / 'nope')})
    assert _provision(_args(), settings, workdir, Answers()) == 1
    assert not _ledger(workdir).csv_path.exists()


def test_provision_without_probe(workdir, settings, bench):
    bench['programmer'] = FakeProgrammer(probes=())
    assert _provision(_args(), settings, workdir, Answers()) == 1
    assert not _ledger(workdir).csv_path.exists()


def test_service_erase_only_leaves_no_record(workdir, settings, bench, capsys):
    assert _provision(_args(menu=True), settings, workdir, Answers('1')) == 0
    assert bench['programmer'].calls == ['list_probes', 'read_debug_mode', 'unlock_debug', 'mass_erase']
    assert not _ledger(workdir).csv_path.exists()
    assert 'Mass erase complete.' in capsys.readouterr().out


def test_service_menu_quit(workdir, settings, bench):
    assert _provision(_args(menu=True), settings, workdir, Answers('q')) == 0
    assert bench['programmer'].calls == ['list_probes']


def test_service_menu_unknown_selection(workdir, settings, bench):
    assert _provision(_args(menu=True), settings, workdir, Answers('x')) == 1


def test_service_no_lock_is_recorded_with_skipped_lock(workdir, settings, bench):
    assert _provision(_args(menu=True), settings, workdir, Answers('2', '', '', 'A')) == 1
    (row,) = list(_ledger(workdir).rows())
    assert row.steps['Lock Debug'] == 'SKIPPED'
    assert row.steps['Token Dump (post)'] == 'ERROR'
    assert row.result == 'ERROR'


def test_print_summary(capsys):
    run = Run(board_label='9-2')
    run.mark(Step.UNLOCK, StepStatus.OK)
    run.fail('Mass erase failed', 'step:mass_erase')
    cli.print_summary(run)
    out = capsys.readouterr().out
    assert 'Board 9-2: ERROR' in out
    assert 'Error: Mass erase failed' in out


def test_parse_args():
    args = cli.parse_args(['-m', '--board-id', '12', '--workdir', '/tmp/bench'])
    assert args.menu
    assert args.board_id == '12'
    assert args.workdir == '/tmp/bench'
    assert not args.verbose


def test_main_refuses_root(monkeypatch, capsys):
    monkeypatch.setattr(os, 'geteuid', lambda: 0, raising=False)
    assert cli.main([]) == 1
    assert 'Do not run this script as root.' in capsys.readouterr().out
