import pytest

from scripts.postgres_migrate import main


def test_postgres_migrate_lists_bundled_migrations(capsys) -> None:
    assert main(["--list"]) == 0

    output = capsys.readouterr().out
    assert output.startswith("0001 0001_proposal_workflow.sql ")


def test_postgres_migrate_requires_dsn(monkeypatch) -> None:
    monkeypatch.delenv("PROPOSAL_POSTGRES_DSN", raising=False)

    with pytest.raises(RuntimeError) as exc:
        main(["--dsn", ""])
    assert str(exc.value) == "POSTGRES_MIGRATION_DSN_REQUIRED:proposals"
