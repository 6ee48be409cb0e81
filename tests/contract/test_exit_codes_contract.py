from __future__ import annotations

from pathlib import Path

import pytest

from crm_recon.cli.__main__ import (
    EXIT_FATAL,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS_ALL,
    main as cli_main,
)

"""Exit code contract: 0 all rows handled, 2 partial, 1 fatal before any row."""


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_fatal_without_config(temp_workdir: Path, mock_mode, capsys):
    code = cli_main(["audit"])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "ERROR config:" in out


def test_exit_code_fatal_missing_input(write_config, mock_mode, capsys):
    code = cli_main(["clients", "data/missing.xlsx"])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "ERROR file not found:" in out


def test_exit_code_fatal_unsupported_input(write_config, temp_workdir: Path, mock_mode, capsys):
    f = temp_workdir / "data" / "clients.txt"
    f.write_text("Nombre\nAcme\n", encoding="utf-8")
    code = cli_main(["clients", str(f)])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "ERROR input: unsupported file type '.txt'" in out


def test_exit_code_fatal_duplicate_headers(write_config, temp_workdir: Path, mock_mode, capsys):
    f = temp_workdir / "data" / "dup.csv"
    f.write_text("Nombre,Nombre\nA,B\n", encoding="utf-8")
    code = cli_main(["clients", str(f)])
    assert code == EXIT_FATAL
    assert "duplicate headers" in capsys.readouterr().out


def test_exit_code_all_success(write_config, write_snapshot, temp_workdir: Path, mock_mode):
    f = temp_workdir / "data" / "ok.csv"
    f.write_text("Nombre,Asesor\nGlobex SRL,Ana Perez\n", encoding="utf-8")
    assert cli_main(["clients", str(f)]) == EXIT_SUCCESS_ALL


def test_exit_code_partial(write_config, write_snapshot, invoices_csv: Path, mock_mode):
    assert cli_main(["invoices", str(invoices_csv)]) == EXIT_PARTIAL_FAILURE


def test_missing_subcommand_is_usage_error(temp_workdir: Path):
    with pytest.raises(SystemExit) as exc:
        cli_main([])
    assert exc.value.code == 2
