from pathlib import Path

import pytest
from pydantic import ValidationError

from pipe2kube.core.exceptions import ConfigError
from pipe2kube.core.services.builders.pipeline import (
    DEFAULT_STAGES,
    default_pipeline,
    load_pipeline,
    resolve_paths,
    summarize_pipeline,
)
from pipe2kube.core.services.runner import plan
from pipe2kube.model import Job, Rule

from conftest import make_ctx


def test_default_pipeline_shape():
    pipeline = default_pipeline()
    assert pipeline.stages == DEFAULT_STAGES
    assert pipeline.get_job("lint_code").allow_failure
    assert not pipeline.get_job("run_tests").allow_failure
    assert pipeline.environments["production"].requires_approval
    assert not pipeline.environments["development"].requires_approval


def test_no_path_gives_default_pipeline():
    assert load_pipeline(None).stages == DEFAULT_STAGES


def test_named_file_that_does_not_exist_is_an_error(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_pipeline(tmp_path / "nope.yml")
    assert "nope.yml" in exc.value.description


def test_yaml_overrides_environments_and_jobs(tmp_path):
    path = tmp_path / "pipe2kube.yml"
    path.write_text(
        "\n".join(
            [
                "stages: [test, deploy]",
                "build:",
                "  dockerfile: docker/Dockerfile",
                "environments:",
                "  staging:",
                "    namespace: staging",
                "    agent_context: group/app:staging-agent",
                "    agent_id: 7",
                "    proxy_url: https://gitlab.example.com/-/kubernetes-agent/k8s-proxy/",
                "    manifest_dir: k8s/staging",
                "    deployment: app",
                "    validate: true",
                "jobs:",
                "  - name: unit",
                "    stage: test",
                "    script: [pytest -q]",
                "  - name: deploy_staging",
                "    stage: deploy",
                "    kind: deploy",
                "    environment: staging",
                "    rules:",
                "      - branches: [$default]",
                "",
            ]
        ),
        encoding="utf-8",
    )
    pipeline = load_pipeline(path)

    assert pipeline.stages == ["test", "deploy"]
    assert pipeline.build.dockerfile == "docker/Dockerfile"
    staging = pipeline.environments["staging"]
    assert staging.name == "staging"
    assert staging.agent_id == 7
    assert staging.validate_manifests
    assert pipeline.get_job("deploy_staging").rules[0].branches == ["$default"]


@pytest.mark.parametrize(
    "content",
    [
        "stages: [test]\njobs:\n  - name: a\n    stage: nope\n    script: [true]\n",
        "stages: [deploy]\njobs:\n  - name: d\n    stage: deploy\n    kind: deploy\n    environment: ghost\n",
        "stages: [test]\njobs:\n  - name: a\n    stage: test\n",
        "stages: [test]\njobs: [{name: a, stage: test, script: [x]}, {name: a, stage: test, script: [y]}]\n",
        "- just\n- a list\n",
        "stages: [unclosed\n",
        "stages: [test]\njobs:\n  - name: a\n    stage: test\n    script: [\"echo 'oops\"]\n",
        "stages: [test]\njobs:\n  - name: a\n    stage: test\n    script: [x]\n    rules: [{when: manual}]\n",
    ],
)
def test_invalid_files_raise_config_error(tmp_path, content):
    path = tmp_path / "pipe2kube.yml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_pipeline(path)


def test_summary_marks_manual_jobs():
    pipeline = default_pipeline()
    summary = summarize_pipeline(pipeline, plan(pipeline, make_ctx(branch="main")))

    assert "deploy_prod: deploy_to_prod (manual)" in summary
    assert "deploy_dev: —" in summary
    assert "Задач к запуску: 3 из 5." in summary


def test_script_line_with_unclosed_quote_is_rejected():
    with pytest.raises(ValidationError) as exc:
        Job(name="a", stage="s", script=["echo 'oops"])
    assert "cannot parse line" in str(exc.value)


def test_rule_without_conditions_is_rejected():
    with pytest.raises(ValidationError):
        Rule()
    with pytest.raises(ValidationError):
        Rule(when="manual")
    assert Rule(tags=True).tags


def test_relative_paths_follow_the_repository_root(tmp_path):
    pipeline = resolve_paths(default_pipeline(), tmp_path / "app")

    development = pipeline.environments["development"]
    assert Path(development.manifest_dir) == tmp_path / "app" / "kubernetes" / "development"
    assert Path(pipeline.build.dockerfile) == tmp_path / "app" / "Dockerfile"
    assert Path(pipeline.build.context) == tmp_path / "app"


def test_absolute_paths_are_kept(tmp_path):
    pipeline = default_pipeline()
    pipeline.environments["development"] = pipeline.environments["development"].model_copy(
        update={"manifest_dir": str(tmp_path / "k8s")}
    )
    resolved = resolve_paths(pipeline, tmp_path / "app")
    assert resolved.environments["development"].manifest_dir == str(tmp_path / "k8s")
