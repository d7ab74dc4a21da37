import asyncio

import pytest

from pipe2kube.core.exceptions import ConfigError
from pipe2kube.core.services.publisher import AuthError, BuildError, ImagePublisher, PushError

from conftest import make_ctx

IMG = "registry.example.com/group/app"


def publish(runner, ctx, **kwargs):
    publisher = ImagePublisher(runner, docker_bin="docker", push_attempts=3, push_backoff=0, **kwargs)
    return asyncio.run(publisher.publish(ctx, dockerfile="Dockerfile", context_dir="."))


def test_feature_branch_pushes_sha_and_slug(runner):
    ctx = make_ctx(branch="Feature/Login")
    result = publish(runner, ctx)

    login, build = runner.commands[0], runner.commands[1]
    assert login.args == ("login", "-u", "gitlab-ci-token", "--password-stdin", "registry.example.com")
    assert login.stdin == "s3cret-registry"
    assert build.args == (
        "build", "-t", f"{IMG}:abc123de", "-t", f"{IMG}:feature-login",
        "-f", "Dockerfile", ".",
    )
    assert runner.calls("push") == [("push", f"{IMG}:abc123de"), ("push", f"{IMG}:feature-login")]
    assert runner.calls("tag") == []
    assert result.pushed == ["abc123de", "feature-login"]
    assert result.image.sha_tag in result.image.tags


@pytest.mark.parametrize(
    "kwargs",
    [
        {"branch": "main"},
        {"branch": "master", "default_branch": "main"},
        {"branch": "trunk", "default_branch": "trunk"},
    ],
)
def test_default_and_main_branches_also_push_latest(runner, kwargs):
    result = publish(runner, make_ctx(**kwargs))

    assert runner.calls("tag") == [("tag", f"{IMG}:abc123de", f"{IMG}:latest")]
    assert runner.calls("push")[-1] == ("push", f"{IMG}:latest")
    assert result.pushed[-1] == "latest"
    assert "abc123de" in result.image.tags


def test_tag_pipeline_uses_tag_slug(runner):
    result = publish(runner, make_ctx(branch=None, tag="v1.2.0"))
    assert result.pushed == ["abc123de", "v1-2-0"]


def test_password_never_displayed(runner):
    publish(runner, make_ctx(branch="development"))
    for command in runner.commands:
        assert "s3cret-registry" not in command.display()


def test_login_failure_aborts_before_build(runner):
    runner.on("login", exit_code=1, stderr="unauthorized: HTTP Basic: Access denied")
    with pytest.raises(AuthError) as exc:
        publish(runner, make_ctx())
    assert runner.calls("build") == []
    assert any("Access denied" in line for line in exc.value.logs)


def test_missing_credentials_is_auth_error(runner):
    with pytest.raises(AuthError):
        publish(runner, make_ctx(registry_password=None))
    assert runner.commands == []


def test_missing_registry_is_config_error(runner):
    with pytest.raises(ConfigError):
        publish(runner, make_ctx(registry=""))


def test_build_failure_pushes_nothing(runner):
    runner.on("build", exit_code=1, stderr="failed to solve")
    with pytest.raises(BuildError):
        publish(runner, make_ctx())
    assert runner.calls("push") == []


def test_push_is_retried(runner):
    runner.on("push", exit_code=1, stderr="connection reset", times=2)
    result = publish(runner, make_ctx(branch="development"))

    sha_pushes = [c for c in runner.calls("push") if c[1].endswith(":abc123de")]
    assert len(sha_pushes) == 3
    assert result.pushed == ["abc123de", "development"]


def test_push_gives_up_after_bounded_attempts(runner):
    runner.on("push", exit_code=1, stderr="connection reset")
    with pytest.raises(PushError) as exc:
        publish(runner, make_ctx(branch="development"))
    assert len(runner.calls("push")) == 3
    assert exc.value.image == f"{IMG}:abc123de"
