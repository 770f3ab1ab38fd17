"""Tests for the governance command line."""

import json
from pathlib import Path

import pytest

from scripts.governance import main


def run(project_root: Path, *args: str) -> int:
    return main(["--project-root", str(project_root), *args])


def test_compare_against_baseline(project_root: Path, make_experiment, capsys) -> None:
    make_experiment("exp-001", {"accuracy": 0.80})
    make_experiment("exp-002", {"accuracy": 0.88})

    assert run(project_root, "compare", "churn", "exp-002", "--baseline", "exp-001") == 0
    out = capsys.readouterr().out
    assert "Candidate better: True" in out
    assert "Improvement: 10.00%" in out


def test_compare_missing_metrics_exit_code(project_root: Path, capsys) -> None:
    assert run(project_root, "compare", "churn", "exp-404", "--baseline", "exp-001") == 2
    assert "Not found" in capsys.readouterr().out


def test_best(project_root: Path, make_experiment, capsys) -> None:
    make_experiment("exp-001", {"accuracy": 0.80})
    make_experiment("exp-002", {"accuracy": 0.88})

    assert run(project_root, "best", "churn", "--metric", "accuracy") == 0
    assert capsys.readouterr().out.strip() == "exp-002"


def test_best_nothing_qualifies(project_root: Path, make_experiment) -> None:
    make_experiment("exp-001", {"rmse": 0.3})
    assert run(project_root, "best", "churn", "--metric", "accuracy") == 1


def test_evaluate_rejects_missing_required_metric(
    project_root: Path, make_experiment, capsys
) -> None:
    make_experiment("exp-001", {"accuracy": 0.80})

    code = run(project_root, "evaluate", "churn", "exp-001", "--require", "auc")

    assert code == 1
    assert "REJECTED" in capsys.readouterr().out


def test_promote_history_rollback(project_root: Path, make_experiment, capsys) -> None:
    make_experiment("exp-001", {"accuracy": 0.80})
    make_experiment("exp-002", {"accuracy": 0.88})

    assert run(project_root, "promote", "churn", "exp-001") == 0
    assert run(project_root, "promote", "churn", "exp-002") == 0
    assert "Backup:" in capsys.readouterr().out

    assert run(project_root, "rollback", "churn") == 0
    assert "Rolled back from exp-002 to exp-001" in capsys.readouterr().out

    assert run(project_root, "history", "churn", "--limit", "1") == 0
    out = capsys.readouterr().out
    assert "Action: rollback" in out
    assert "Action: promote" not in out


def test_promote_unknown_experiment(project_root: Path, capsys) -> None:
    assert run(project_root, "promote", "churn", "exp-404") == 1
    assert "experiment_not_found" in capsys.readouterr().out


def test_trigger_reports_conditions(project_root: Path, capsys) -> None:
    assert run(project_root, "trigger", "churn", "--days", "14") == 0
    out = capsys.readouterr().out
    assert "[MET] Scheduled Retraining" in out


def test_sweep_outputs_json(project_root: Path, make_experiment, capsys) -> None:
    make_experiment("exp-001", {"accuracy": 0.80, "f1_score": 0.7})

    assert run(project_root, "sweep", "--metric", "accuracy") == 0
    data = json.loads(capsys.readouterr().out)
    assert data["warnings"] == []
    assert data["models"]["churn"]["best_experiment"] == "exp-001"


def test_subcommand_required() -> None:
    with pytest.raises(SystemExit):
        main([])
