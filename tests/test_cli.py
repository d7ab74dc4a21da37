import pytest
import yaml
from click.testing import CliRunner

from pipe2kube import cli
from pipe2kube.core.services.builders.pipeline import default_environments
from pipe2kube.core.templates import scaffold

SHA = "abc123def4567890abc123def4567890abc123de"


@pytest.fixture
def ci_env(monkeypatch, clean_ci_env):
    monkeypatch.setenv("CI_REGISTRY", "registry.example.com")
    monkeypatch.setenv("CI_PROJECT_PATH", "group/app")
    monkeypatch.setenv("CI_REGISTRY_USER", "gitlab-ci-token")
    monkeypatch.setenv("CI_REGISTRY_PASSWORD", "registry-pass")
    monkeypatch.setenv("CI_JOB_TOKEN", "job-token")


@pytest.fixture
def project_dir(tmp_path, monkeypatch, ci_env):
    scaffold(tmp_path, default_environments())
    monkeypatch.chdir(tmp_path)
    return tmp_path


def invoke(*args):
    return CliRunner().invoke(cli.main, list(args))


def test_plan_for_feature_branch_runs_nothing(project_dir):
    result = invoke("plan", "--sha", SHA, "--branch", "feature/x")
    assert result.exit_code == 0, result.output
    assert "Задач к запуску: 0 из 5." in result.output


def test_plan_for_main_shows_manual_production(project_dir):
    result = invoke("plan", "--sha", SHA, "--branch", "main")
    assert result.exit_code == 0, result.output
    assert "deploy_to_prod (manual)" in result.output


def test_dry_run_pipeline_on_development(project_dir):
    result = invoke("run", "--sha", SHA, "--branch", "development", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "deploy_to_dev" in result.output
    assert "RolloutComplete" in result.output
    assert "registry-pass" not in result.output
    assert "job-token" not in result.output


def test_manual_job_without_approval_does_not_run(project_dir):
    result = invoke("job", "deploy_to_prod", "--sha", SHA, "--branch", "main", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "manual" in result.output
    assert "kubectl" not in result.output


def test_manual_job_with_approval_deploys(project_dir):
    result = invoke(
        "job", "deploy_to_prod", "--sha", SHA, "--branch", "main", "--approve", "--dry-run"
    )
    assert result.exit_code == 0, result.output
    assert "kubectl apply -f" in result.output
    assert "production" in result.output


def test_unknown_job_exits_with_error(project_dir):
    result = invoke("job", "no_such_job", "--sha", SHA, "--branch", "main")
    assert result.exit_code == 1
    assert "Unknown job" in result.output


def test_render_writes_gitlab_ci(tmp_path):
    result = invoke("render", "-o", str(tmp_path))
    assert result.exit_code == 0, result.output
    doc = yaml.safe_load((tmp_path / ".gitlab-ci.yml").read_text(encoding="utf-8"))
    assert "deploy_to_prod" in doc


def test_init_scaffolds_project(tmp_path):
    result = invoke("init", "-o", str(tmp_path), "--app", "shop")
    assert result.exit_code == 0, result.output
    assert (tmp_path / "Dockerfile").is_file()
    deployment = (tmp_path / "kubernetes" / "development" / "deployment.yaml").read_text(encoding="utf-8")
    assert "name: shop" in deployment
    assert (tmp_path / "pipe2kube.yml").is_file()


def test_missing_config_file_is_an_error(project_dir):
    result = invoke("plan", "--config", "typo.yml", "--sha", SHA, "--branch", "development")
    assert result.exit_code == 1
    assert "typo.yml" in result.output


def test_app_name_from_init_reaches_the_deploy(tmp_path, monkeypatch, ci_env):
    monkeypatch.chdir(tmp_path)
    assert invoke("init", "--app", "shop").exit_code == 0

    result = invoke("run", "--sha", SHA, "--branch", "development", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "rollout status deployment/shop -n development" in result.output
    assert "your-project/shop:development-agent" in result.output
    assert "deployment/your-app" not in result.output


def test_run_from_outside_the_repository(tmp_path, monkeypatch, ci_env):
    app = tmp_path / "app"
    scaffold(app, default_environments())
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    result = invoke(
        "run", "--repo", str(app), "--sha", SHA, "--branch", "development", "--dry-run"
    )
    assert result.exit_code == 0, result.output
    assert f"-f {app / 'Dockerfile'} {app}" in result.output
    assert str(app / "kubernetes" / "development" / "service.yaml") in result.output
