"""Tests for configuration loading."""

from pilotflow.config import load_config
from pilotflow.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository, get_repository


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
log_level: DEBUG
agents:
  model: test
cost:
  cost_per_1k_tokens: 0.01
  token_estimates:
    TestWeaver: 500
execution:
  timeout: 30
"""
    )
    monkeypatch.setenv("PILOTFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("PILOTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.agents.model == "test"
    assert config.cost.cost_per_1k_tokens == 0.01
    assert config.cost.token_estimates == {"TestWeaver": 500}
    assert config.cost.default_tokens == 1500
    assert config.execution.timeout == 30
    assert config.database_url is None


def test_defaults_when_config_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("PILOTFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("PILOTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.cost.cost_per_1k_tokens == 0.003
    assert config.cost.token_estimates["VisualAnalysis"] == 2500
    assert config.execution.retry_on_failure is False


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://ignored.db\n")
    monkeypatch.setenv("PILOTFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("PILOTFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'wf.db'}")

    assert load_config().database_url == f"sqlite://{tmp_path / 'wf.db'}"


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "wf.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("PILOTFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("PILOTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    repo = get_repository(config=load_config())
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)


def test_get_repository_defaults_to_memory(tmp_path, monkeypatch):
    monkeypatch.setenv("PILOTFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("PILOTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    repo = get_repository()
    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo
