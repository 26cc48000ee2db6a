"""Typer CLI for operator registration."""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .config import OperatorSettings, RegistrationPolicy
from .deployments import load_network_topology
from .errors import RegistrationError
from .logging_utils import configure_logging
from .registration import check_registration_state
from .signers import OperatorIdentity
from .workflow import build_chain, register_operator

app = typer.Typer(help="Register a layer operator with the AVS stake registry")
console = Console()
err_console = Console(stderr=True)

INTERRUPTED_EXIT_CODE = 130


def _load_settings(settings_path: Optional[Path], env_file: Optional[Path], **overrides: object) -> OperatorSettings:
    settings = OperatorSettings.load(settings_path, env_file=env_file, **overrides)
    configure_logging(settings.log_level, settings.log_file)
    return settings


def _fail(exc: RegistrationError, action: str) -> NoReturn:
    err_console.print(f"Failed to {action}: {exc}", style="bold red", markup=False)
    raise typer.Exit(code=exc.exit_code)


@app.command()
def register(
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="YAML settings file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Dotenv file, defaults to a discovered .env"),
    rpc_url: Optional[str] = typer.Option(None, help="JSON-RPC endpoint, overrides TESTNET_RPC_URL"),
    policy: Optional[RegistrationPolicy] = typer.Option(None, help="Behaviour when already registered"),
    gas_limit: Optional[int] = typer.Option(None, help="Gas ceiling for the registration call"),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
) -> None:
    """Sign a fresh attestation and register the operator."""

    try:
        settings = _load_settings(
            settings_path, env_file, rpc_url=rpc_url, registration_policy=policy, gas_limit=gas_limit
        )
        outcome = register_operator(settings, chain=build_chain(settings))
    except RegistrationError as exc:
        _fail(exc, "register operator")
    except KeyboardInterrupt:
        err_console.print(
            "Interrupted; a transaction already broadcast (see the logged hash) may still be mined",
            style="yellow",
        )
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE)

    if as_json:
        console.print_json(data=outcome.as_dict())
    elif outcome.submission is None:
        console.print(Panel(f"Operator {outcome.operator} is already registered; nothing submitted"))
    else:
        console.print(
            Panel(f"Operator {outcome.operator} registered\ntx_hash: {outcome.submission.tx_hash}", style="bold green")
        )


@app.command()
def status(
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="YAML settings file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Dotenv file, defaults to a discovered .env"),
    rpc_url: Optional[str] = typer.Option(None, help="JSON-RPC endpoint, overrides TESTNET_RPC_URL"),
) -> None:
    """Show the operator address and its current registration state."""

    try:
        settings = _load_settings(settings_path, env_file, rpc_url=rpc_url)
        topology = load_network_topology(settings.core_deployment_path, settings.middleware_deployment_path)
        with OperatorIdentity.from_key(settings.private_key.get_secret_value()) as identity:
            operator = identity.address
        registered = check_registration_state(build_chain(settings), topology.delegation, operator)
    except RegistrationError as exc:
        _fail(exc, "query registration state")

    console.print_json(data={"operator": operator, "registered": registered, "topology": topology.as_dict()})


def main() -> None:
    app()


if __name__ == "__main__":
    main()
