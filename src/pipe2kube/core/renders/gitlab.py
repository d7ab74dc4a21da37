import yaml

from typing import Any, Dict, List

from pipe2kube.model import DEFAULT_BRANCH_MARKER, Job, Pipeline, Rule

SCRIPT_IMAGE = "node:lts-alpine"
BUILD_IMAGE = "docker:latest"
DEPLOY_IMAGE = "alpine/k8s:1.30.4"
DOCKER_HOST = "tcp://docker:2375"

PACKAGE_VAR = "PIPE2KUBE_PACKAGE"
PACKAGE_DEFAULT = "pipe2kube"

# оба образа на alpine: python ставится из apk, pipe2kube из pip
INSTALL_SCRIPT = [
    "apk add --no-cache python3 py3-pip",
    f'pip install --break-system-packages "${PACKAGE_VAR}"',
]


def _branch_expr(branch: str) -> str:
    if branch == DEFAULT_BRANCH_MARKER:
        return "$CI_COMMIT_BRANCH == $CI_DEFAULT_BRANCH"
    return f'$CI_COMMIT_BRANCH == "{branch}"'


def render_rule(rule: Rule) -> Dict[str, Any]:
    """
    Rule -> элемент rules: в синтаксисе GitLab CI.
    """
    parts: List[str] = [_branch_expr(b) for b in rule.branches]
    parts += [f'$CI_PIPELINE_SOURCE == "{s}"' for s in rule.sources]
    if rule.tags:
        parts.append("$CI_COMMIT_TAG")
    return {"if": " || ".join(parts), "when": rule.when}


def render_job(job: Job, pipeline: Pipeline) -> Dict[str, Any]:
    data: Dict[str, Any] = {"stage": job.stage}

    if job.kind == "script":
        data["image"] = SCRIPT_IMAGE
        data["script"] = list(job.script)
    else:
        data["image"] = BUILD_IMAGE if job.kind == "build" else DEPLOY_IMAGE
        data["before_script"] = list(INSTALL_SCRIPT)
        manual = any(rule.when == "manual" for rule in job.rules)
        # ручной запуск в GitLab — это и есть подтверждение деплоя
        data["script"] = [f"pipe2kube job {job.name}" + (" --approve" if manual else "")]

    if job.kind == "build":
        data["services"] = ["docker:dind"]
        data["variables"] = {"DOCKER_HOST": DOCKER_HOST, "DOCKER_TLS_CERTDIR": ""}

    if job.kind == "deploy":
        env = pipeline.environments[job.environment]
        data["environment"] = {"name": env.name}
        if env.url:
            data["environment"]["url"] = env.url

    if job.rules:
        data["rules"] = [render_rule(rule) for rule in job.rules]
    if job.allow_failure:
        data["allow_failure"] = True
    return data


def render(pipeline: Pipeline) -> str:
    """
    Рендерит пайплайн в .gitlab-ci.yml: script-задачи как есть,
    build/deploy — вызовом pipe2kube job <name>.
    """
    document: Dict[str, Any] = {
        "stages": list(pipeline.stages),
        "variables": {PACKAGE_VAR: PACKAGE_DEFAULT},
    }
    for job in pipeline.jobs:
        document[job.name] = render_job(job, pipeline)
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
