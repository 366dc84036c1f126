"""starknet-deploy command line interface."""

import logging
from pathlib import Path
from typing import List, Optional

import click

from .config import DeploymentConfig
from .exceptions import ConfigError, DeploymentError, StepFailed
from .log import setup_logging
from .orchestrator import DeployStep, Orchestrator, StepResult, StepState, steps_from_config
from .registry import AddressRegistry


def _abort(error: BaseException, step: Optional[str] = None) -> None:
    """Print "<ErrorKind>: <message>" (and the step) to stderr and exit 1."""
    if isinstance(error, StepFailed):
        kind, message = error.kind, str(error.cause)
        step = step or error.step
    else:
        kind, message = type(error).__name__, str(error)
    click.echo(f"{kind}: {message}", err=True)
    if step is not None:
        click.echo(f"Step: {step}", err=True)
    if isinstance(error, StepFailed) and error.transaction_hash:
        click.echo(f"Transaction: {error.transaction_hash}", err=True)
    raise SystemExit(1)


def _load_config(ctx: click.Context) -> DeploymentConfig:
    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = DeploymentConfig.from_yaml(ctx.obj["config_path"])
        except DeploymentError as e:
            _abort(e)
    return ctx.obj["config"]


def _registry(config: DeploymentConfig) -> AddressRegistry:
    return AddressRegistry(config.registry_dir)


def _orchestrator(config: DeploymentConfig) -> Orchestrator:
    return Orchestrator(_registry(config), classes=config.classes)


def _report(result: StepResult) -> None:
    if result.state is StepState.SKIPPED and result.error is None:
        click.echo(f"{result.step}: skipped (already recorded)")
    elif result.receipt is not None and result.receipt.contract_address is not None:
        click.echo(f"{result.step}: {result.state.value} at {result.receipt.contract_address}")
    elif result.receipt is not None:
        click.echo(f"{result.step}: {result.state.value} (tx {result.receipt.transaction_hash})")
    else:
        click.echo(f"{result.step}: {result.state.value}")


@click.group()
@click.option(
    "--config",
    "config_path",
    help="Deployment config file (defaults to ./deployment.yml)",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output with logger names and source lines")
@click.option(
    "--log-file",
    help="Also write every log record to this file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
)
@click.pass_context
def cli(ctx, config_path, verbose, log_file):
    """Deploy and wire StarkNet contracts from a YAML plan."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file=log_file, detailed=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("step_name", metavar="STEP")
@click.option("--network", "-n", help="Network to run on (defaults to default_network)")
@click.pass_context
def run(ctx, step_name, network):
    """Run a single plan step."""
    config = _load_config(ctx)
    try:
        steps = steps_from_config(config.steps)
        if step_name not in steps:
            raise ConfigError(f"No step named '{step_name}' in {config.path}")
        context = config.context(network)
    except DeploymentError as e:
        _abort(e, step_name)

    result = _orchestrator(config).run(steps[step_name], context)
    if result.error is not None:
        _abort(result.error)
    _report(result)


@cli.command("run-all")
@click.option("--network", "-n", help="Network to run on (defaults to default_network)")
@click.option("--workers", "-w", type=click.IntRange(min=1), default=1, help="Concurrent steps per layer")
@click.option("--skip-recorded", is_flag=True, help="Skip deploy steps already in the registry")
@click.pass_context
def run_all(ctx, network, workers, skip_recorded):
    """Run every plan step in dependency order."""
    config = _load_config(ctx)
    try:
        steps = list(steps_from_config(config.steps).values())
        context = config.context(network)
        results = _orchestrator(config).run_plan(
            steps, context, max_workers=workers, skip_recorded=skip_recorded
        )
    except DeploymentError as e:
        _abort(e)

    failures: List[StepResult] = []
    for result in results:
        _report(result)
        if not result.ok:
            failures.append(result)
    if failures:
        # The first failure is the cause; later ones are usually skips
        _abort(failures[0].error)


@cli.command()
@click.argument("name")
@click.option("--network", "-n", help="Registry network (defaults to default_network)")
@click.pass_context
def resolve(ctx, name, network):
    """Print the recorded address of a contract."""
    config = _load_config(ctx)
    try:
        address = _registry(config).resolve(config.select_network(network), name)
    except DeploymentError as e:
        _abort(e)
    click.echo(address)


@cli.command("list")
@click.option("--network", "-n", help="Registry network (defaults to default_network)")
@click.pass_context
def list_contracts(ctx, network):
    """List the contracts recorded on a network."""
    config = _load_config(ctx)
    registry = _registry(config)
    try:
        network = config.select_network(network)
        for name in registry.contract_names(network):
            click.echo(f"{name}: {registry.resolve(network, name)}")
    except DeploymentError as e:
        _abort(e)


@cli.command()
@click.argument("name")
@click.option("--network", "-n", help="Registry network (defaults to default_network)")
@click.pass_context
def history(ctx, name, network):
    """Show previous addresses of a contract, oldest first."""
    config = _load_config(ctx)
    try:
        record = _registry(config).get(config.select_network(network), name)
    except DeploymentError as e:
        _abort(e)

    for previous in record.history:
        click.echo(f"{previous.get('recorded_at', '?')}  {previous['address']}")
    click.echo(f"{record.recorded_at}  {record.address}  (active)")


@cli.command()
@click.argument("step_name", metavar="STEP")
@click.argument("transaction_hash", metavar="TX_HASH")
@click.option("--network", "-n", help="Network to check (defaults to default_network)")
@click.pass_context
def reconcile(ctx, step_name, transaction_hash, network):
    """Record a deploy submitted by an earlier, interrupted run."""
    config = _load_config(ctx)
    try:
        step = steps_from_config(config.steps).get(step_name)
        if not isinstance(step, DeployStep):
            raise ConfigError(f"No deploy step named '{step_name}' in {config.path}")
        context = config.context(network)
    except DeploymentError as e:
        _abort(e, step_name)

    result = _orchestrator(config).reconcile(step, context, transaction_hash)
    if result.error is not None:
        _abort(result.error)
    if result.state is StepState.CONFIRMING:
        click.echo(f"{step_name}: transaction {transaction_hash} is still pending; try again later")
        raise SystemExit(1)
    _report(result)


if __name__ == "__main__":
    cli()
