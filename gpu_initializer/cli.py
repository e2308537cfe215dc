"""CLI interface for the GPU initializer."""

import json
import logging
from pathlib import Path

import click
import yaml

from gpu_initializer.config import DEFAULT_CONFIGMAP, DEFAULT_INITIALIZER_NAME, InitializerSettings
from gpu_initializer.controllers.pod_initializer import PodInitializer
from gpu_initializer.errors import ConfigError
from gpu_initializer.patch import diff
from gpu_initializer.policy import Policy


@click.group()
def cli():
    """GPU initializer CLI."""
    pass


@cli.command()
@click.option(
    "--initializer-name", envvar="GPU_INITIALIZER_NAME", default=DEFAULT_INITIALIZER_NAME, help="The initializer name"
)
@click.option(
    "--configmap",
    envvar="GPU_INITIALIZER_CONFIGMAP",
    default=DEFAULT_CONFIGMAP,
    help="The gpu initializer configuration configmap",
)
@click.option("--namespace", envvar="POD_NAMESPACE", default=None, help="Namespace of the configmap")
@click.option("--metrics-port", envvar="GPU_INITIALIZER_METRICS_PORT", default=8081, type=int, help="Metrics port")
def run(initializer_name, configmap, namespace, metrics_port):
    """Run the initializer."""
    from gpu_initializer.operator import run_operator

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    settings = InitializerSettings.from_env(
        initializer_name=initializer_name, configmap=configmap, namespace=namespace, metrics_port=metrics_port
    )
    run_operator(settings)


@cli.command()
@click.argument("pod_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--policy", "policy_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Policy file")
@click.option("--initializer-name", default=DEFAULT_INITIALIZER_NAME, help="The initializer name")
def plan(pod_file, policy_file, initializer_name):
    """Print the patch that would be sent for a pod manifest."""
    pod = yaml.safe_load(pod_file.read_text())
    if not isinstance(pod, dict):
        raise click.ClickException(f"{pod_file} does not contain a pod manifest")

    try:
        policy = Policy.from_yaml(policy_file.read_text()) if policy_file else Policy()
    except ConfigError as e:
        raise click.ClickException(str(e))

    mutation = PodInitializer(None, policy, initializer_name).plan(pod)
    if mutation is None:
        click.echo(f"Pod is not waiting on {initializer_name}, nothing to do")
        return

    if mutation.ignored:
        click.echo("Namespace is ignored, only the initializer queue is advanced", err=True)
    click.echo(json.dumps(json.loads(diff(mutation.original, mutation.mutated)), indent=2, sort_keys=True))


if __name__ == "__main__":
    cli()
