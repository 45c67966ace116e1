"""
Tests for execution backends, the Docker control plane and supporting services
"""

import threading
import time
from unittest.mock import Mock, patch

import pytest
import requests
from apscheduler.schedulers.background import BackgroundScheduler

from dockhand.core.builders import ServiceSpec
from dockhand.core.shell import quote
from dockhand.exceptions import (
    CommandFailure,
    ExecutionError,
    NotFoundError,
    PipelineStageError,
    ResourceOperationError,
    RunCancelled,
    ValidationError,
)
from dockhand.models.deployment import BackupDestination, BackupJob
from dockhand.models.results import CommandResult
from dockhand.models.ssh import SSHConfig, SSHConnection
from dockhand.services.docker_service import DockerService
from dockhand.services.execution import (
    CancellationToken,
    LocalExecutionBackend,
    RemoteExecutionBackend,
    RoutingExecutionBackend,
)
from dockhand.services.host_service import HostService
from dockhand.services.notification_service import (
    BackupEvent,
    BuildEvent,
    NotificationService,
    Notifier,
    WebhookNotifier,
)
from dockhand.services.registry_service import RegistryService, is_update_available
from dockhand.services.run_service import RunService, RunState
from dockhand.services.scheduler_service import (
    JobRegistry,
    run_scheduled_backup,
    schedule_backups,
)

from tests.conftest import RecordingBackend


def make_job(backup_id=1, schedule="0 2 * * *"):
    return BackupJob(
        backup_id=backup_id,
        database_type="postgres",
        database="orders",
        prefix="/nightly",
        app_name="shop-db",
        application_name="Orders DB",
        project_name="shop",
        destination=BackupDestination(bucket="backups", access_key="a", secret_key="s"),
        schedule=schedule,
    )


class TestLocalExecution:
    """Test running commands through the local shell"""

    def test_captures_output_and_exit_code(self):
        """Test stdout, stderr and status are returned, trailing newlines removed"""
        result = LocalExecutionBackend().run(None, "echo out; echo err >&2; exit 3")

        assert result.stdout == "out"
        assert result.stderr == "err"
        assert result.exit_code == 3
        assert result.is_failure

    def test_check_raises_on_failure(self):
        """Test check() turns a non-zero exit into CommandFailure"""
        with pytest.raises(CommandFailure) as exc_info:
            LocalExecutionBackend().check(None, "echo nope >&2; exit 2")
        assert exc_info.value.result.exit_code == 2
        assert "nope" in exc_info.value.message

    def test_success(self):
        """Test a zero exit status"""
        result = LocalExecutionBackend().run(None, "true")
        assert result.is_success
        assert result.stdout == ""

    def test_cancelled_token_prevents_start(self):
        """Test nothing runs once the token fired"""
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RunCancelled):
            LocalExecutionBackend().run(None, "echo never", token)

    def test_cancel_kills_running_command(self):
        """Test cancelling mid-run stops the process group"""
        token = CancellationToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(RunCancelled):
                LocalExecutionBackend().run(None, "sleep 30", token)
        finally:
            timer.cancel()
        assert time.monotonic() - started < 10


class TestRemoteExecution:
    """Test running commands over ssh"""

    @staticmethod
    def resolve(host):
        return SSHConnection("203.0.113.10", SSHConfig("deploy"), port=2222)

    def test_wraps_command_in_ssh(self):
        """Test the ssh argv carries the command as one bash argument"""
        with patch(
            "dockhand.services.execution.run_process",
            return_value=CommandResult(stdout="ok"),
        ) as run_process:
            result = RemoteExecutionBackend(self.resolve).run("web-1", "docker ps")

        argv = run_process.call_args[0][0]
        assert argv[0] == "ssh"
        assert argv[-2:] == ["deploy@203.0.113.10", "bash -c 'docker ps'"]
        assert "2222" in argv
        assert result.stdout == "ok"

    def test_bash_features_survive_a_posix_login_shell(self):
        """Test pipefail scripts are not handed to the login shell directly"""
        command = "set -o pipefail; pg_dump app | gzip | aws s3 cp - s3://b/k.sql.gz"
        with patch(
            "dockhand.services.execution.run_process",
            return_value=CommandResult(),
        ) as run_process:
            RemoteExecutionBackend(self.resolve).run("web-1", command)

        assert run_process.call_args[0][0][-1] == f"bash -c {quote(command)}"

    def test_cancel_kills_remote_process_group(self):
        """Test cancelling a remote command also stops it on the server"""
        token = CancellationToken()
        with patch(
            "dockhand.services.execution.run_process",
            side_effect=[RunCancelled("Run was cancelled", host="web-1"), CommandResult()],
        ) as run_process:
            with pytest.raises(RunCancelled):
                RemoteExecutionBackend(self.resolve).run("web-1", "sleep 600", token)

        first, second = run_process.call_args_list
        script = first[0][0][-1]
        pid_file = script.split("echo $$ > ", 1)[1].split(";", 1)[0]
        assert pid_file.startswith("/tmp/dockhand-")
        assert script.endswith(f"status=$?; rm -f {pid_file}; exit $status")
        assert first[0][3] is token

        kill = second[0][0][-1]
        assert kill.startswith("bash -c ")
        assert "kill -TERM" in kill
        assert pid_file in kill
        assert len(second[0]) == 3

    def test_failed_remote_kill_still_reports_cancel(self):
        """Test an unreachable host during cancel does not mask the cancel"""
        with patch(
            "dockhand.services.execution.run_process",
            side_effect=[
                RunCancelled("Run was cancelled", host="web-1"),
                ExecutionError("Could not start command", host="web-1"),
            ],
        ):
            with pytest.raises(RunCancelled):
                RemoteExecutionBackend(self.resolve).run("web-1", "sleep 600", CancellationToken())

    def test_cancelled_token_never_connects(self):
        """Test an already cancelled run opens no connection"""
        token = CancellationToken()
        token.cancel()
        with patch("dockhand.services.execution.run_process") as run_process:
            with pytest.raises(RunCancelled):
                RemoteExecutionBackend(self.resolve).run("web-1", "docker ps", token)
        run_process.assert_not_called()

    def test_unknown_host_is_execution_error(self):
        """Test resolver lookups that fail surface as execution errors"""

        def resolve(host):
            raise NotFoundError("Server", host)

        with pytest.raises(ExecutionError) as exc_info:
            RemoteExecutionBackend(resolve).run("db-9", "docker ps")
        assert exc_info.value.host == "db-9"
        assert "db-9" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, NotFoundError)

    def test_transport_failure_is_execution_error(self):
        """Test ssh exit status 255 is not a command failure"""
        with patch(
            "dockhand.services.execution.run_process",
            return_value=CommandResult(stderr="Permission denied (publickey).", exit_code=255),
        ):
            with pytest.raises(ExecutionError) as exc_info:
                RemoteExecutionBackend(self.resolve).run("web-1", "docker ps")
        assert "Permission denied" in exc_info.value.message
        assert exc_info.value.host == "web-1"

    def test_requires_host(self):
        """Test a host-less call is rejected"""
        with pytest.raises(ExecutionError):
            RemoteExecutionBackend(self.resolve).run(None, "docker ps")

    def test_routing(self):
        """Test host-less commands stay local"""
        local, remote = RecordingBackend(), RecordingBackend()
        routing = RoutingExecutionBackend(local, remote)

        routing.run(None, "docker ps")
        routing.run("web-1", "docker images")

        assert local.calls == [(None, "docker ps")]
        assert remote.calls == [("web-1", "docker images")]


class TestSSHConnection:
    """Test ssh argv construction"""

    def test_multiplexing_options(self, tmp_path):
        """Test ControlMaster options when a control dir is set"""
        connection = SSHConnection(
            "203.0.113.10", SSHConfig("root", "~/.ssh/id_ed25519"), control_dir=str(tmp_path)
        )
        argv = connection.build_command("uptime")

        assert "ControlMaster=auto" in argv
        assert f"ControlPath={tmp_path}/%r@%h:%p" in argv
        assert "BatchMode=yes" in argv
        assert argv[-1] == "uptime"

    def test_no_multiplexing_without_control_dir(self):
        """Test plain connections"""
        argv = SSHConnection("203.0.113.10", SSHConfig("root")).build_command("uptime")
        assert not any(arg.startswith("ControlPath") for arg in argv)
        assert "-i" not in argv


class TestHostService:
    """Test server lookups"""

    def test_resolves_registered_server(self, seed, settings, db, tmp_path):
        """Test a server row becomes an SSH connection"""
        seed(host="web-1")
        hosts = HostService(settings, session_factory=db)

        connection = hosts.get_connection("web-1")

        assert connection.host == "203.0.113.10"
        assert connection.port == 2222
        assert connection.config.user == "deploy"
        assert (tmp_path / "mux").is_dir()
        assert hosts.get_connection("web-1") is connection

        hosts.forget("web-1")
        assert hosts.get_connection("web-1") is not connection

    def test_unknown_server(self, db, settings):
        """Test unknown identifiers"""
        with pytest.raises(NotFoundError):
            HostService(settings, session_factory=db).get_connection("nope")


class TestDockerQueries:
    """Test read operations and their degradation"""

    def test_list_containers(self, backend):
        """Test listing uses the container template and attributes the host"""
        backend.respond(
            "docker ps",
            stdout="CONTAINER ID : abc123 | Name: api.1 | Image: api | Ports:  | State: running | Status: Up",
        )
        containers = DockerService(backend).list_containers("web-1")

        assert [c.name for c in containers] == ["api.1"]
        assert containers[0].source_host == "web-1"
        assert backend.calls[0][0] == "web-1"
        assert "CONTAINER ID : {{.ID}}" in backend.commands[0]

    def test_unreachable_host_reads_as_empty(self, backend):
        """Test transport errors degrade to an empty list"""
        backend.fail_with("docker", ExecutionError("SSH transport failed", host="web-1"))
        docker = DockerService(backend)

        assert docker.list_containers("web-1") == []
        assert docker.list_networks("web-1") == []
        assert docker.inspect_container("abc123", "web-1") is None

    def test_failed_command_reads_as_empty(self, backend):
        """Test non-zero exits degrade to an empty list"""
        backend.respond("docker volume ls", stderr="Cannot connect to the Docker daemon", exit_code=1)
        assert DockerService(backend).list_volumes() == []

    def test_compose_apps_match_by_label(self, backend):
        """Test docker-compose applications are found by project label"""
        docker = DockerService(backend)
        docker.get_containers_by_app_name("shop", "docker-compose")
        docker.get_containers_by_app_name("shop")

        assert "label=com.docker.compose.project=shop" in backend.commands[0]
        assert "name=shop" in backend.commands[1]

    def test_find_service_container(self, backend):
        """Test the first running container of a service"""
        backend.respond(
            "status=running",
            stdout="CONTAINER ID : abc123 | Name: shop-db.1.x | State: running\n"
            "CONTAINER ID : def456 | Name: shop-db.2.y | State: running",
        )
        container = DockerService(backend).find_service_container("shop-db")
        assert container.container_id == "abc123"

    def test_find_service_container_none_running(self, backend):
        """Test no match"""
        assert DockerService(backend).find_service_container("shop-db") is None

    def test_containers_by_network(self, backend):
        """Test the network inspect JSON"""
        backend.respond(
            "docker network inspect",
            stdout='{"abc123": {"Name": "api.1"}, "def456": {}}',
        )
        containers = DockerService(backend).get_containers_by_network("backend")
        assert [(c.container_id, c.name) for c in containers] == [
            ("abc123", "api.1"),
            ("def456", "No container name"),
        ]

    def test_images_with_update_check(self, backend):
        """Test update flags are filled only for tagged images"""
        backend.respond(
            "docker images",
            stdout="Repository: <none> | Tag: <none> | Image ID: a1 | Size: 1MB | Created: 1 day ago\n"
            "Repository: nginx | Tag: 1.25 | Image ID: b2 | Size: 180MB | Created: 3 weeks ago",
        )
        registry = Mock()
        registry.check_for_update.return_value = True

        images = DockerService(backend, registry).list_images(check_updates=True)

        assert [i.update_available for i in images] == [False, True]
        registry.check_for_update.assert_called_once_with("nginx", "1.25", None)


class TestDockerMutations:
    """Test mutating operations"""

    def test_invalid_driver_runs_nothing(self, backend):
        """Test validation happens before any command"""
        with pytest.raises(ValidationError):
            DockerService(backend).create_network("backend", driver="weave")
        assert backend.calls == []

    def test_create_network(self, backend):
        """Test optional addressing flags"""
        backend.respond("docker network create", stdout="f00d\n")
        network_id = DockerService(backend).create_network(
            "mesh", driver="overlay", subnet="10.20.0.0/16", gateway="10.20.0.1"
        )
        assert network_id == "f00d"
        assert backend.commands[0] == (
            "docker network create --driver overlay mesh "
            "--subnet 10.20.0.0/16 --gateway 10.20.0.1"
        )

    def test_failure_is_resource_error(self, backend):
        """Test docker refusing a change"""
        backend.respond("docker volume rm", stderr="volume is in use", exit_code=1)
        with pytest.raises(ResourceOperationError) as exc_info:
            DockerService(backend).delete_volume("data", force=True)

        assert exc_info.value.message == (
            "Failed to delete volume: Command exited with status 1: volume is in use"
        )
        assert backend.commands[0] == "docker volume rm data -f"

    def test_pull_up_to_date_is_success(self, backend):
        """Test the up-to-date status on stderr"""
        backend.respond(
            "docker pull", stderr="Status: Image is up to date for nginx:1.25", exit_code=1
        )
        assert DockerService(backend).pull_image("nginx:1.25") == ""

    def test_update_image_restarts_containers_when_pull_fails(self, backend):
        """Test stopped containers are started again before the error propagates"""
        backend.respond("ancestor=", stdout="c1\nc2")
        backend.respond("docker pull", stderr="manifest unknown", exit_code=1)

        with pytest.raises(ResourceOperationError):
            DockerService(backend).update_image("nginx:1.25")

        assert backend.ran("docker stop c1")
        assert backend.ran("docker start c1")
        assert backend.ran("docker start c2")

    def test_update_image(self, backend):
        """Test the update summary"""
        backend.respond("ancestor=", stdout="c1")
        backend.respond("docker pull", stdout="Status: Downloaded newer image for nginx:1.25")

        result = DockerService(backend).update_image("nginx:1.25")

        assert result.updated is True
        assert result.restarted == 1
        assert result.message == "Image updated successfully. Restarted 1 containers."

    def test_scale_rejects_zero(self, backend):
        """Test replica validation"""
        with pytest.raises(ValidationError):
            DockerService(backend).scale_service("api", 0)
        assert backend.calls == []

    def test_prune_system(self, backend):
        """Test the system prune command"""
        DockerService(backend).prune_system("web-1")
        assert backend.calls == [("web-1", "docker system prune --all --force --volumes")]

    def test_deploy_service_single_command(self, backend):
        """Test create-or-update happens in one round-trip"""
        spec = ServiceSpec(
            name="shop-web",
            image="shop-web",
            replicas=2,
            env={"A": "1"},
            ports=["8080:80"],
            network="dockhand-network",
        )
        DockerService(backend).deploy_service(spec, "web-1")

        assert backend.calls == [
            (
                "web-1",
                "if docker service inspect shop-web >/dev/null 2>&1; "
                "then docker service update --force --image shop-web --replicas 2 "
                "--env-add A=1 --publish-add 8080:80 shop-web; "
                "else docker service create --name shop-web --replicas 2 --env A=1 "
                "--publish 8080:80 --network dockhand-network shop-web; fi",
            )
        ]


class TestRegistry:
    """Test the image update check"""

    CANDIDATE = {
        "name": "latest",
        "digest": "sha256:top",
        "images": [
            {"architecture": "arm64", "digest": "sha256:arm"},
            {"architecture": "amd64", "digest": "sha256:amd"},
        ],
    }

    def test_same_digest_is_current(self):
        """Test matching per-architecture digest"""
        assert not is_update_available("latest", self.CANDIDATE, "sha256:amd", "amd64")
        assert not is_update_available("latest", self.CANDIDATE, "sha256:top", "amd64")

    def test_different_digest_is_update(self):
        """Test a re-pushed tag is detected"""
        assert is_update_available("latest", self.CANDIDATE, "sha256:old", "amd64")

    def test_falls_back_to_tag_name(self):
        """Test missing digests compare tag names"""
        assert not is_update_available("latest", self.CANDIDATE, None, "amd64")
        assert is_update_available("1.0", self.CANDIDATE, None, None)

    def test_fetch_latest_tag(self, backend):
        """Test the Docker Hub query"""
        session = Mock()
        session.get.return_value.json.return_value = {
            "results": [{"name": "1.25"}, {"name": "stable-latest"}, {"name": "latest"}]
        }
        registry = RegistryService(backend, session=session)

        assert registry.fetch_latest_tag("nginx") == {"name": "stable-latest"}
        session.get.assert_called_once_with(
            "https://hub.docker.com/v2/repositories/library/nginx/tags",
            params={"page_size": 100, "ordering": "last_updated"},
            timeout=10,
        )

    def test_malformed_payload(self, backend):
        """Test unexpected registry data"""
        session = Mock()
        session.get.return_value.json.return_value = {"results": [{"tag": 1}]}
        assert RegistryService(backend, session=session).fetch_latest_tag("nginx") is None

    def test_registry_down_means_no_update(self, backend):
        """Test request failures never raise"""
        session = Mock()
        session.get.side_effect = requests.ConnectionError("down")
        registry = RegistryService(backend, session=session)

        assert registry.check_for_update("nginx", "latest") is False
        assert backend.calls == []

    def test_check_for_update(self, backend):
        """Test digest comparison against the local image"""
        session = Mock()
        session.get.return_value.json.return_value = {"results": [self.CANDIDATE]}
        backend.respond("RepoDigests", stdout="nginx@sha256:old")
        backend.respond("docker image inspect", stdout='[{"Architecture": "amd64"}]')

        registry = RegistryService(backend, session=session)
        assert registry.check_for_update("nginx", "latest", "web-1") is True
        assert all(host == "web-1" for host, _ in backend.calls)


class TestNotifications:
    """Test notification fan-out"""

    def test_failing_channel_is_contained(self, notifier):
        """Test one broken channel does not stop the others"""

        class Broken(Notifier):
            def notify_backup(self, event):
                raise RuntimeError("smtp down")

        service = NotificationService([Broken(), notifier], synchronous=True)
        service.notify_backup(BackupEvent("shop", "Orders DB", "postgres"))

        assert [kind for kind, _ in notifier.events] == ["backup"]

    def test_background_delivery(self, notifier):
        """Test fire-and-forget delivery"""
        service = NotificationService([notifier])
        service.notify_build_success(BuildEvent("shop", "Web", "https://x"))
        service.shutdown(wait=True)

        assert notifier.events[0][0] == "build_success"

    def test_webhook_payload(self):
        """Test the JSON body"""
        session = Mock()
        WebhookNotifier("https://hooks.example.com/x", session=session).notify_backup(
            BackupEvent("shop", "Orders DB", "postgres", error_message="disk full")
        )
        session.post.assert_called_once_with(
            "https://hooks.example.com/x",
            json={
                "event": "backup.error",
                "project": "shop",
                "application": "Orders DB",
                "database_type": "postgres",
                "error_message": "disk full",
            },
            timeout=10,
        )


class TestRunService:
    """Test background runs"""

    def test_successful_run(self):
        """Test the result and final state"""
        runs = RunService()
        run_id = runs.submit("answer", lambda token: 42)

        assert runs.wait(run_id, timeout=5) == 42
        assert runs.status(run_id) == RunState.SUCCEEDED
        assert [run.name for run in runs.list_runs()] == ["answer"]
        assert runs.cancel(run_id) is False
        runs.shutdown()

    def test_failed_run(self):
        """Test the error is kept and re-raised"""

        def fail(token):
            raise ValueError("boom")

        runs = RunService()
        run_id = runs.submit("fail", fail)

        with pytest.raises(ValueError):
            runs.wait(run_id, timeout=5)
        assert runs.status(run_id) == RunState.FAILED
        assert runs.get(run_id).error == "boom"
        runs.shutdown()

    def test_cancel_running_command(self):
        """Test cancelling kills the in-flight command"""
        runs = RunService()
        run_id = runs.submit(
            "sleep", lambda token: LocalExecutionBackend().run(None, "sleep 30", token)
        )
        time.sleep(0.2)

        assert runs.cancel(run_id) is True
        with pytest.raises(RunCancelled):
            runs.wait(run_id, timeout=10)
        assert runs.status(run_id) == RunState.CANCELLED
        runs.shutdown()

    def test_old_finished_runs_are_dropped(self):
        """Test the registry keeps only the newest finished runs"""
        runs = RunService(max_workers=1, keep_finished=1)
        first = runs.submit("first", lambda token: 1)
        runs.wait(first, timeout=5)
        second = runs.submit("second", lambda token: 2)
        runs.wait(second, timeout=5)

        with pytest.raises(NotFoundError):
            runs.get(first)
        assert runs.status(second) == RunState.SUCCEEDED
        assert [run.name for run in runs.list_runs()] == ["second"]
        runs.shutdown()

    def test_active_runs_are_kept(self):
        """Test a running run survives other runs finishing"""
        release = threading.Event()
        runs = RunService(max_workers=2, keep_finished=1)
        slow = runs.submit("slow", lambda token: release.wait(5))
        first = runs.submit("first", lambda token: 1)
        runs.wait(first, timeout=5)
        second = runs.submit("second", lambda token: 2)
        runs.wait(second, timeout=5)

        assert {run.name for run in runs.list_runs()} == {"slow", "second"}
        assert runs.status(slow) in (RunState.PENDING, RunState.RUNNING)
        release.set()
        assert runs.wait(slow, timeout=5) is True
        assert [run.name for run in runs.list_runs()] == ["slow"]
        runs.shutdown()

    def test_unknown_run(self):
        """Test lookups of unknown ids"""
        with pytest.raises(NotFoundError):
            RunService().get("nope")


class TestJobRegistry:
    """Test cron scheduling"""

    def test_schedule_replace_and_cancel(self):
        """Test jobs are keyed by id"""
        registry = JobRegistry(BackgroundScheduler(timezone="UTC"))
        registry.start()
        try:
            registry.schedule("backup-1", "0 2 * * *", print)
            registry.schedule("backup-1", "30 3 * * *", print)

            jobs = registry.list_jobs()
            assert [job.job_id for job in jobs] == ["backup-1"]
            assert jobs[0].next_run_time.hour == 3

            assert registry.cancel("backup-1") is True
            assert registry.cancel("backup-1") is False
        finally:
            registry.shutdown()

    @pytest.mark.parametrize("expression", ["every night", "61 * * * *"])
    def test_invalid_cron(self, expression):
        """Test malformed expressions"""
        with pytest.raises(ValidationError):
            JobRegistry().schedule("backup-1", expression, print)

    def test_schedule_backups(self):
        """Test only valid schedules are registered"""
        store = Mock()
        store.list_enabled_backups.return_value = [
            make_job(1),
            make_job(2, schedule=None),
            make_job(3, schedule="bogus"),
        ]
        registry = JobRegistry()

        assert schedule_backups(registry, store, Mock()) == 1
        assert [job.job_id for job in registry.list_jobs()] == ["backup-1"]

    def test_scheduled_failure_is_logged(self):
        """Test a failing scheduled backup does not raise"""
        store = Mock()
        store.find_backup_by_id.return_value = make_job(1)
        pipeline = Mock()
        pipeline.run.side_effect = PipelineStageError("locate", RuntimeError("gone"))

        run_scheduled_backup(store, pipeline, 1)

        pipeline.run.assert_called_once_with(store.find_backup_by_id.return_value)
