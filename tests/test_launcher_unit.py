"""Unit tests for the ECS runner launcher.

The boto3 ECS client is a MagicMock; assertions are made on the RunTask
arguments it receives.
"""

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from webhook_runners.ecs.launcher import (
    LaunchError,
    RunnerLauncher,
    RunnerScope,
    needs_ephemeral_storage_override,
)
from webhook_runners.profiles import ResourceProfile
from webhook_runners.webhook.models import LaunchDecision

from conftest import JOB_URL, PROFILE_LABEL, TASK_ARN, make_ecs_client, make_token, run_async


def _decision(disk: int = 20, labels=("self-hosted", PROFILE_LABEL)) -> LaunchDecision:
    return LaunchDecision(
        organization="acme",
        repository="widgets",
        job_url=JOB_URL,
        labels=tuple(labels),
        profile=ResourceProfile(cpu=16384, memory=65536, disk=disk, timeout=30),
    )


def _environment(request: dict) -> dict:
    (container,) = request["overrides"]["containerOverrides"]
    return {item["name"]: item["value"] for item in container["environment"]}


class TestBuildLaunchRequest:
    def test_cpu_and_memory_at_task_and_container_level(self, launcher):
        decision = _decision()

        request = launcher.build_launch_request(make_token(), decision)

        overrides = request["overrides"]
        assert overrides["cpu"] == "16384"
        assert overrides["memory"] == "65536"
        (container,) = overrides["containerOverrides"]
        assert container["name"] == "github-actions-runner"
        assert container["cpu"] == 16384
        assert container["memory"] == 65536

    def test_sizing_comes_from_decision_profile(self, launcher):
        decision = _decision().model_copy(
            update={"profile": ResourceProfile(cpu=4096, memory=8192, disk=50, timeout=10)}
        )

        request = launcher.build_launch_request(make_token(), decision)

        overrides = request["overrides"]
        assert (overrides["cpu"], overrides["memory"]) == ("4096", "8192")
        assert overrides["ephemeralStorage"] == {"sizeInGiB": 50}
        assert _environment(request)["TIMEOUT"] == "10m"

    def test_cluster_task_definition_and_subnet(self, launcher):
        decision = _decision()

        request = launcher.build_launch_request(make_token(), decision)

        assert request["cluster"] == launcher.cluster
        assert request["taskDefinition"] == "github-actions-runner"
        assert request["networkConfiguration"] == {
            "awsvpcConfiguration": {"subnets": ["subnet-0123456789abcdef0"]}
        }

    @pytest.mark.parametrize("disk", [0, 20, 21])
    def test_small_disk_omits_override(self, launcher, disk):
        decision = _decision(disk=disk)

        request = launcher.build_launch_request(make_token(), decision)

        assert "ephemeralStorage" not in request["overrides"]

    @pytest.mark.parametrize("disk", [22, 30, 200])
    def test_large_disk_sets_override(self, launcher, disk):
        decision = _decision(disk=disk)

        request = launcher.build_launch_request(make_token(), decision)

        assert request["overrides"]["ephemeralStorage"] == {"sizeInGiB": disk}

    def test_org_scope_environment(self, launcher):
        decision = _decision()

        request = launcher.build_launch_request(make_token("REG"), decision)

        assert _environment(request) == {
            "RUNNER_NAME_PREFIX": "aws-ecs-fargate-16384cpu-65536mem-20disk-30m",
            "RUNNER_TOKEN": "REG",
            "RUNNER_SCOPE": "org",
            "ORG_NAME": "acme",
            "LABELS": f"self-hosted,{PROFILE_LABEL}",
            "EPHEMERAL": "true",
            "START_DOCKER_SERVICE": "true",
            "TIMEOUT": "30m",
        }

    def test_repo_scope_environment(self, launcher):
        decision = _decision()

        request = launcher.build_launch_request(
            make_token("REG"), decision, RunnerScope.REPO
        )

        environment = _environment(request)
        assert environment["RUNNER_SCOPE"] == "repo"
        assert environment["REPO_URL"] == "https://github.com/acme/widgets"
        assert "ORG_NAME" not in environment

    def test_tags_exclude_token(self, launcher):
        decision = _decision()

        request = launcher.build_launch_request(make_token("SECRET-REG"), decision)

        assert request["tags"] == [
            {"key": "Repository", "value": "https://github.com/acme/widgets/"},
            {"key": "Size", "value": "16384cpu-65536mem-20disk-30m"},
            {"key": "Job", "value": JOB_URL},
        ]
        assert all("SECRET-REG" not in tag["value"] for tag in request["tags"])

    def test_empty_labels_is_assertion_failure(self, launcher):
        decision = _decision(labels=())

        with pytest.raises(AssertionError):
            launcher.build_launch_request(make_token(), decision)


class TestLaunch:
    def test_launch_submits_request(self, launcher, ecs_client):
        outcome = run_async(launcher.launch(make_token(), _decision()))

        assert outcome.task_arns == [TASK_ARN]
        assert outcome.failures == []
        ecs_client.run_task.assert_called_once()
        kwargs = ecs_client.run_task.call_args.kwargs
        assert kwargs["taskDefinition"] == "github-actions-runner"

    def test_failures_alongside_started_task_are_reported(self, caplog):
        client = make_ecs_client(
            {
                "tasks": [{"taskArn": TASK_ARN}],
                "failures": [{"arn": "arn:x", "reason": "RESOURCE:CPU", "detail": "d"}],
            }
        )
        launcher = RunnerLauncher(cluster="c", subnet="s", ecs_client=client)

        outcome = run_async(launcher.launch(make_token(), _decision()))

        assert outcome.started
        assert outcome.failures[0].reason == "RESOURCE:CPU"
        assert "RESOURCE:CPU" in caplog.text

    def test_only_failures_raises(self):
        client = make_ecs_client(
            {"tasks": [], "failures": [{"arn": "arn:x", "reason": "Capacity is unavailable"}]}
        )
        launcher = RunnerLauncher(cluster="c", subnet="s", ecs_client=client)

        with pytest.raises(LaunchError) as exc_info:
            run_async(launcher.launch(make_token(), _decision()))
        assert exc_info.value.failures[0].reason == "Capacity is unavailable"
        client.run_task.assert_called_once()

    def test_client_error_raises_launch_error(self):
        client = make_ecs_client()
        client.run_task.side_effect = ClientError(
            {"Error": {"Code": "InvalidParameterException", "Message": "bad cpu"}},
            "RunTask",
        )
        launcher = RunnerLauncher(cluster="c", subnet="s", ecs_client=client)

        with pytest.raises(LaunchError, match="InvalidParameterException"):
            run_async(launcher.launch(make_token(), _decision()))
        client.run_task.assert_called_once()

    def test_connection_error_raises_launch_error(self):
        client = make_ecs_client()
        client.run_task.side_effect = EndpointConnectionError(endpoint_url="https://ecs")
        launcher = RunnerLauncher(cluster="c", subnet="s", ecs_client=client)

        with pytest.raises(LaunchError):
            run_async(launcher.launch(make_token(), _decision()))

    def test_empty_labels_never_reach_ecs(self, launcher, ecs_client):
        with pytest.raises(AssertionError):
            run_async(launcher.launch(make_token(), _decision(labels=())))
        ecs_client.run_task.assert_not_called()


def test_ephemeral_storage_threshold():
    assert not needs_ephemeral_storage_override(20)
    assert not needs_ephemeral_storage_override(21)
    assert needs_ephemeral_storage_override(22)
