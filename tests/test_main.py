from pathlib import Path

from main import main

STATEMENT = (
    "source,date,description,amount,currency\n"
    "TestBank,01/01/2024,Restaurant bill,-1234.56,USD\n"
    "TestBank,02/01/2024,Uber ride,-50.00,USD\n"
    "TestBank,03/01/2024,Salary,5000.00,USD\n"
)


def _config(tmp_path: Path) -> str:
    config_file = tmp_path / "expensetrace.yml"
    config_file.write_text(
        f"db:\n  source: {tmp_path / 'expenses.db'}\nlogger:\n  output: discard\n",
        encoding="utf-8",
    )
    return str(config_file)


def test_import_then_export(tmp_path: Path, capsys) -> None:
    config = _config(tmp_path)
    statement = tmp_path / "statement.csv"
    statement.write_text(STATEMENT, encoding="utf-8")
    export = tmp_path / "export.csv"

    assert main(["--config", config, "migrate"]) == 0
    assert "schema at version 11" in capsys.readouterr().out

    assert main(["--config", config, "user", "add", "bob", "--password-hash", "x"]) == 0
    assert main(
        ["--config", config, "category", "add", "Transport", "uber|taxi", "--user", "bob"]
    ) == 0
    capsys.readouterr()

    assert main(["--config", config, "import", str(statement), "--user", "bob"]) == 0
    assert capsys.readouterr().out.strip() == (
        "3 expenses imported. 2 expenses without category"
    )

    assert main(
        [
            "--config", config, "export", str(export),
            "--user", "bob", "--amount-max", "0", "--sort", "date:asc",
        ]
    ) == 0
    assert export.read_text(encoding="utf-8").splitlines() == [
        "ID,Source,Date,Description,Amount,Type,Currency,Category",
        "1,TestBank,2024-01-01,restaurant bill,-1234.56,charge,USD,",
        "2,TestBank,2024-01-02,uber ride,-50.00,charge,USD,Transport",
    ]

    assert main(["--config", config, "category", "list", "--user", "bob"]) == 0
    listing = capsys.readouterr().out.splitlines()
    assert [line.split("\t")[1] for line in listing] == ["🚫 Exclude", "Transport"]


def test_unknown_user_fails(tmp_path: Path) -> None:
    config = _config(tmp_path)
    statement = tmp_path / "statement.csv"
    statement.write_text(STATEMENT, encoding="utf-8")
    assert main(["--config", config, "import", str(statement), "--user", "nobody"]) == 1


def test_bad_config_fails(tmp_path: Path, capsys) -> None:
    config_file = tmp_path / "bad.yml"
    config_file.write_text("logger:\n  level: loud\n", encoding="utf-8")
    assert main(["--config", str(config_file), "migrate"]) == 1
    assert "Unable to parse the configuration" in capsys.readouterr().err


def test_delete_drops_tables(tmp_path: Path, capsys) -> None:
    config = _config(tmp_path)
    assert main(["--config", config, "migrate"]) == 0
    assert main(["--config", config, "delete"]) == 0
    assert "All tables dropped" in capsys.readouterr().out
