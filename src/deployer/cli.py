"""Command line entrypoint.

Example:
    $ deployer deploy --env test --method jar --jar target/app.jar --host 10.0.0.10
    $ deployer deploy --env test --method container --image petclinic:dev --transfer --host localhost
    $ deployer healthcheck --url http://10.0.0.10:8080/actuator/health
    $ deployer rollback --env stage --job petclinic --build-number 41 --host 10.0.2.10
    $ deployer run --job petclinic --branch develop --artifact target/app.jar
"""

from __future__ import annotations

import asyncio
import json
import sys
from enum import IntEnum
from pathlib import Path

import click
import structlog

from deployer.api.dependencies.services import ServiceContainer
from deployer.config import get_settings, Settings
from deployer.domain.errors import (
    ConfigurationError,
    ConnectivityError,
    DeployerError,
    PipelineBusyError,
)
from deployer.domain.models.build import BuildRecord
from deployer.domain.models.environment import (
    ConnectionProfile,
    ContainerTransfer,
    DeliveryMethod,
    EnvironmentName,
)
from deployer.domain.models.pipeline import DeploymentAttempt
from deployer.infrastructure.approval.console import ConsoleApprovalGate
from deployer.infrastructure.observability.logging import setup_logging


logger = structlog.get_logger(__name__)

MANUAL_JOB = "manual"


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    CONNECTIVITY = 255


def _exit_code_for(error: DeployerError) -> ExitCode:
    if isinstance(error, ConnectivityError):
        return ExitCode.CONNECTIVITY
    return ExitCode.FAILURE


def _fail(error: DeployerError) -> None:
    click.echo(f"ERROR: {error}", err=True)
    sys.exit(_exit_code_for(error))


def _target_profile(
    settings: Settings,
    env: str,
    host: str | None,
    user: str | None,
    port: int | None,
    ssh_port: int | None,
) -> ConnectionProfile:
    """Start from the configured environment profile and apply overrides."""
    environment = EnvironmentName(env)
    static = settings.environments.profiles.get(environment)
    if static is None and host is None:
        raise click.UsageError(f"No profile for {env}; pass --host")
    return ConnectionProfile(
        environment=environment,
        host=static.host if host is None else host,
        port=port or (static.port if static else settings.application.container_port),
        principal=user or (static.principal if static else settings.remote.default_user),
        auth_handle=settings.remote.key_path,
        ssh_port=ssh_port or (static.ssh_port if static else 22),
        deploy_method=static.deploy_method if static else DeliveryMethod.JAR,
        runtime_profile=(static.runtime_profile if static else "") or env,
        requires_approval=static.requires_approval if static else False,
    )


def _transfer(settings: Settings, transfer: bool | None) -> ContainerTransfer:
    use_transfer = (not settings.container.use_registry) if transfer is None else transfer
    return ContainerTransfer.IMAGE_TRANSFER if use_transfer else ContainerTransfer.REGISTRY


def _reference(method: DeliveryMethod, jar: Path | None, image: str | None) -> str:
    if method == DeliveryMethod.JAR:
        if jar is None:
            raise click.UsageError("--jar is required for --method jar")
        return str(jar)
    if not image:
        raise click.UsageError("--image is required for --method container")
    return image


target_options = [
    click.option(
        "--env", "-e",
        type=click.Choice([e.value for e in EnvironmentName]),
        default=EnvironmentName.TEST.value,
        help="Target environment (default: test).",
    ),
    click.option(
        "--host",
        type=str,
        default=None,
        help="Target host (default: from profile); localhost or \"\" deploys on this machine.",
    ),
    click.option("--user", type=str, default=None, help="Remote user (default: from profile)."),
    click.option("--port", type=int, default=None, help="Service port on the target."),
    click.option("--ssh-port", type=int, default=None, help="ssh port on the target."),
]


def with_target_options(func):
    for option in reversed(target_options):
        func = option(func)
    return func


@click.group()
@click.option("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO).")
def cli(log_level: str | None) -> None:
    """Branch-driven deployment with health probing and rollback."""
    settings = get_settings()
    setup_logging(log_level or settings.observability.log_level, stream=sys.stderr)


@cli.command(name="deploy", help="Deploy one artifact to a target environment.")
@with_target_options
@click.option(
    "--method", "-m",
    type=click.Choice([m.value for m in DeliveryMethod]),
    default=None,
    help="Delivery method (default: from profile).",
)
@click.option(
    "--jar",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Local jar for the jar method.",
)
@click.option("--image", type=str, default=None, help="Image reference for the container method.")
@click.option(
    "--transfer/--registry",
    default=None,
    help="Ship the image as a tarball instead of pulling from a registry.",
)
def deploy_command(
    env: str,
    host: str | None,
    user: str | None,
    port: int | None,
    ssh_port: int | None,
    method: str | None,
    jar: Path | None,
    image: str | None,
    transfer: bool | None,
) -> None:
    """Deploy without probing or rollback; exit 255 when the host is unreachable."""
    settings = get_settings()
    profile = _target_profile(settings, env, host, user, port, ssh_port)
    delivery = DeliveryMethod(method) if method else profile.deploy_method
    reference = _reference(delivery, jar, image)

    container = ServiceContainer(settings)
    attempt = DeploymentAttempt(
        build_record=BuildRecord(
            job=MANUAL_JOB, build_number=1, artifact_reference=reference, method=delivery,
        ),
        connection_profile=profile,
        method=delivery,
        container_transfer=_transfer(settings, transfer),
    )
    try:
        asyncio.run(container.executor().deploy(attempt))
    except DeployerError as e:
        _fail(e)
    click.echo(f"Deployed {reference} to {profile.environment.value} ({profile.host or 'local'})")


@cli.command(name="healthcheck", help="Poll a health URL until healthy or timed out.")
@click.option("--url", required=True, help="Health endpoint URL.")
@click.option("--timeout", type=float, default=None, help="Overall budget in seconds (default: 120).")
@click.option("--interval", type=float, default=None, help="Seconds between attempts (default: 5).")
@click.option(
    "--via-ssh",
    type=str,
    default=None,
    metavar="USER@HOST",
    help="Run the request on this host with curl.",
)
@click.option("--ssh-port", type=int, default=22, help="ssh port for --via-ssh.")
def healthcheck_command(
    url: str,
    timeout: float | None,
    interval: float | None,
    via_ssh: str | None,
    ssh_port: int,
) -> None:
    settings = get_settings()
    container = ServiceContainer(settings)

    via = None
    if via_ssh:
        principal, _, via_host = via_ssh.rpartition("@")
        via = ConnectionProfile(
            environment=settings.environments.default_environment,
            host=via_host,
            port=settings.application.container_port,
            principal=principal or settings.remote.default_user,
            auth_handle=settings.remote.key_path,
            ssh_port=ssh_port,
        )

    try:
        result = asyncio.run(container.prober().probe(
            url,
            timeout if timeout is not None else settings.probe.timeout_seconds,
            interval if interval is not None else settings.probe.interval_seconds,
            via=via,
        ))
    except ConfigurationError as e:
        _fail(e)

    if not result.healthy:
        click.echo(f"UNHEALTHY after {result.elapsed_seconds:.0f}s: {url}", err=True)
        sys.exit(ExitCode.FAILURE)
    click.echo(f"HEALTHY after {result.elapsed_seconds:.0f}s")
    click.echo(result.last_response_body)


@cli.command(name="rollback", help="Redeploy an earlier build to a target environment.")
@with_target_options
@click.option("--job", default=None, help="Job whose archive holds the build (default: APP_NAME).")
@click.option("--build-number", type=int, required=True, help="Build to restore.")
@click.option(
    "--jar",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Jar to restore instead of the archived one.",
)
@click.option("--image", type=str, default=None, help="Image to restore instead of the archived one.")
@click.option("--transfer/--registry", default=None, help="Image delivery for container rollbacks.")
def rollback_command(
    env: str,
    host: str | None,
    user: str | None,
    port: int | None,
    ssh_port: int | None,
    job: str | None,
    build_number: int,
    jar: Path | None,
    image: str | None,
    transfer: bool | None,
) -> None:
    settings = get_settings()
    profile = _target_profile(settings, env, host, user, port, ssh_port)
    container = ServiceContainer(settings)
    job = job or settings.application.name

    async def _rollback() -> str:
        if jar is not None:
            method, reference = DeliveryMethod.JAR, str(jar)
        elif image:
            method, reference = DeliveryMethod.CONTAINER, image
        else:
            method = profile.deploy_method
            reference = await container.archive.fetch(job, build_number)
        await container.executor().deploy(DeploymentAttempt(
            build_record=BuildRecord(
                job=job, build_number=build_number, artifact_reference=reference, method=method,
            ),
            connection_profile=profile,
            method=method,
            container_transfer=_transfer(settings, transfer),
        ))
        return reference

    try:
        reference = asyncio.run(_rollback())
    except DeployerError as e:
        _fail(e)
    click.echo(f"Rolled back {profile.environment.value} to build #{build_number} ({reference})")


@cli.command(name="run", help="Run the full pipeline for one build.")
@click.option("--job", default=None, help="Job name (default: APP_NAME).")
@click.option("--branch", default="", help="Source branch; selects the environment.")
@click.option(
    "--artifact",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Jar produced by the build.",
)
@click.option("--image", type=str, default=None, help="Image produced by the build.")
@click.option("--build-number", type=int, default=None, help="Build number (default: next).")
@click.option("--commit", "commit_id", default="", help="Commit the build came from.")
@click.option(
    "--force-failure",
    is_flag=True,
    default=False,
    help="Fail after a healthy probe to exercise rollback.",
)
@click.option(
    "--approve-as",
    default=None,
    help="Pre-grant production approval as this user instead of prompting.",
)
def run_command(
    job: str | None,
    branch: str,
    artifact: Path | None,
    image: str | None,
    build_number: int | None,
    commit_id: str,
    force_failure: bool,
    approve_as: str | None,
) -> None:
    if (artifact is None) == (image is None):
        raise click.UsageError("Pass exactly one of --artifact or --image")

    settings = get_settings()
    container = ServiceContainer(settings, approval_gate=ConsoleApprovalGate(approve_as))
    method = DeliveryMethod.JAR if artifact is not None else DeliveryMethod.CONTAINER
    reference = str(artifact) if artifact is not None else image

    async def _run():
        await container.startup()
        try:
            return await container.orchestrator.run(
                job or settings.application.name,
                branch,
                reference,
                commit_id=commit_id,
                method=method,
                build_number=build_number,
                force_failure=force_failure,
            )
        finally:
            await container.shutdown()

    try:
        run = asyncio.run(_run())
    except PipelineBusyError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(ExitCode.FAILURE)

    click.echo(json.dumps({
        "run_id": run.id,
        "job": run.job,
        "build_number": run.build.build_number,
        "environment": run.profile.environment.value if run.profile else None,
        "stage": run.stage.value,
        "error_kind": run.error_kind.value if run.error_kind else None,
        "error_message": run.error_message,
        "rollback_build_number": run.rollback_build_number,
        "rollback_error": run.rollback_error,
    }, indent=2))
    sys.exit(run.exit_code)


@cli.command(name="serve", help="Start the HTTP API.")
def serve_command() -> None:
    from deployer.main import main

    main()


if __name__ == "__main__":
    cli()
