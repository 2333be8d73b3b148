"""subnetctl CLI - issue subnet governance transactions, alone or with co-signers."""

from __future__ import annotations

import functools
import json
import time
from pathlib import Path

import click

from .app_logging import configure_logging
from .config import CoordinatorConfig
from .constants import NATIVE_DENOMINATION, SUPPORTED_NETWORKS
from .coordinator import Coordinator, CoordinatorOutcome
from .errors import CoordinatorError
from .rpc import JsonRpcChainClient
from .signers import KeychainSigner
from .transaction import PartiallySignedTransaction
from .types import AssetHolder, AuthorizedSignerSet, OutputOwners, TransformSubnet
from .utils import to_base_units

# Default lead time before a new validator starts validating
START_LEAD_TIME = 5 * 60


def _handle_errors(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except CoordinatorError as e:
            raise click.ClickException(str(e)) from e
        except (OSError, ValueError) as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _coordinator(ctx: click.Context) -> Coordinator:
    obj = ctx.ensure_object(dict)
    if "coordinator" not in obj:
        config: CoordinatorConfig = obj["config"]
        signer = KeychainSigner()
        for path in obj["key_files"]:
            signer.add_key_file(path)
        client = JsonRpcChainClient(config)
        ctx.call_on_close(client.close)
        obj["coordinator"] = Coordinator(signer, client, config)
    return obj["coordinator"]


def _subnet_signer_set(
    coordinator: Coordinator,
    subnet_id: str,
    auth_keys: tuple[str, ...],
) -> AuthorizedSignerSet:
    default = coordinator.subnet_signers(subnet_id)
    if not auth_keys:
        return default
    return AuthorizedSignerSet(addresses=auth_keys, threshold=default.threshold)


def _owners(addresses: tuple[str, ...], threshold: int) -> OutputOwners:
    if not addresses:
        raise click.BadParameter("at least one --to address is required")
    return OutputOwners(threshold=threshold, addresses=addresses)


def _report(outcome: CoordinatorOutcome, output: str | None) -> None:
    if outcome.submitted:
        click.echo(f"Transaction successful, transaction ID: {outcome.receipt.tx_id}")
        return

    ptx = outcome.transaction
    path = Path(output) if output else Path(f"{ptx.tx_id}.json")
    path.write_text(ptx.to_json())
    click.echo(
        f"Partial transaction {ptx.tx_id} written to {path} "
        f"({ptx.signature_count}/{ptx.signers.threshold} signatures)"
    )
    if ptx.is_complete():
        click.echo(f"Threshold met. Submit with: subnetctl transaction commit {path}")
        return
    click.echo("Remaining signers:")
    for address in ptx.remaining_signers:
        click.echo(f"  {address}")
    click.echo(f"Relay the file and run: subnetctl transaction sign {path}")


def _load_tx(path: str) -> PartiallySignedTransaction:
    return PartiallySignedTransaction.from_json(Path(path).read_text())


@click.group()
@click.option(
    "--network",
    type=click.Choice(SUPPORTED_NETWORKS + ["testnet", "main"], case_sensitive=False),
    default=None,
    help="Target network (default: SUBNETCTL_NETWORK or fuji)",
)
@click.option("--api-url", default=None, help="Node API URL override")
@click.option(
    "--key-file",
    "key_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="File holding a 25-word mnemonic or base64 private key (repeatable)",
)
@click.option("--ledger", is_flag=True, help="Confirm each signature on a hardware device")
@click.option("--no-wait", is_flag=True, help="Return right after issuing, without waiting for acceptance")
@click.option("--log-format", type=click.Choice(["pretty", "json"]), default=None)
@click.option("--log-level", default=None)
@click.pass_context
def cli(ctx, network, api_url, key_files, ledger, no_wait, log_format, log_level):
    """subnetctl - threshold co-signed subnet governance"""
    configure_logging(log_level, log_format)
    config = CoordinatorConfig.from_env().with_overrides(
        network=network,
        api_url=api_url,
        using_ledger=True if ledger else None,
        wait_for_acceptance=False if no_wait else None,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["key_files"] = key_files


# ============================================================================
# subnet
# ============================================================================


@cli.group()
def subnet():
    """Create and govern subnets."""


@subnet.command("create")
@click.option("--control-key", "control_keys", multiple=True, required=True, help="Subnet control key (repeatable)")
@click.option("--threshold", type=int, default=1, show_default=True)
@click.pass_context
@_handle_errors
def subnet_create(ctx, control_keys, threshold):
    """Create a subnet, paid by the first wallet key."""
    outcome = _coordinator(ctx).create_subnet(control_keys, threshold)
    click.echo(f"Subnet ID: {outcome.receipt.tx_id}")


@subnet.command("deploy")
@click.option("--control-key", "control_keys", multiple=True, required=True)
@click.option("--threshold", type=int, default=1, show_default=True)
@click.option("--chain-name", required=True)
@click.option("--vm", "vm_name", required=True, help="VM name")
@click.option("--genesis", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--auth-key", "auth_keys", multiple=True, help="Control key authorizing the chain (repeatable)")
@click.option("--output", default=None, help="Where to write a partial transaction")
@click.pass_context
@_handle_errors
def subnet_deploy(ctx, control_keys, threshold, chain_name, vm_name, genesis, auth_keys, output):
    """Create a subnet and a blockchain on it."""
    coordinator = _coordinator(ctx)
    signers = AuthorizedSignerSet(addresses=auth_keys, threshold=threshold) if auth_keys else None
    subnet_outcome, chain_outcome = coordinator.deploy(
        control_keys,
        threshold,
        chain_name,
        vm_name,
        Path(genesis).read_bytes(),
        subnet_signers=signers,
    )
    click.echo(f"Subnet ID: {subnet_outcome.receipt.tx_id}")
    _report(chain_outcome, output)


@subnet.command("add-validator")
@click.argument("subnet_id")
@click.option("--node-id", "node_ids", multiple=True, required=True, help="Node to add (repeatable)")
@click.option("--weight", type=int, default=20, show_default=True)
@click.option("--start", "start_time", type=int, default=None, help="Unix start time (default: in 5 minutes)")
@click.option("--duration", type=int, required=True, help="Validation period in seconds")
@click.option("--auth-key", "auth_keys", multiple=True)
@click.option("--output", default=None, help="File (one node) or directory (several nodes) for partial transactions")
@click.pass_context
@_handle_errors
def subnet_add_validator(ctx, subnet_id, node_ids, weight, start_time, duration, auth_keys, output):
    """Add validators to a subnet. Several nodes are added concurrently."""
    coordinator = _coordinator(ctx)
    signers = _subnet_signer_set(coordinator, subnet_id, auth_keys)
    start_time = start_time or int(time.time()) + START_LEAD_TIME

    if len(node_ids) == 1:
        outcome = coordinator.add_validator(
            node_ids[0], subnet_id, weight, start_time, duration, signers=signers
        )
        _report(outcome, output)
        return

    out_dir = Path(output) if output else None
    if out_dir:
        out_dir.mkdir(parents=True, exist_ok=True)
    results = coordinator.add_validators(
        subnet_id, node_ids, weight, start_time, duration, signers=signers
    )
    failed = 0
    for result in results:
        click.echo(f"{result.identity}:")
        if result.ok:
            target = str(out_dir / f"{result.identity}.json") if out_dir else None
            _report(result.outcome, target)
        else:
            failed += 1
            click.echo(f"  failed: {result.error}")
    if failed:
        raise click.ClickException(f"{failed} of {len(results)} validators failed")


@subnet.command("remove-validator")
@click.argument("subnet_id")
@click.option("--node-id", required=True)
@click.option("--auth-key", "auth_keys", multiple=True)
@click.option("--output", default=None)
@click.pass_context
@_handle_errors
def subnet_remove_validator(ctx, subnet_id, node_id, auth_keys, output):
    """Remove a validator from a subnet."""
    coordinator = _coordinator(ctx)
    signers = _subnet_signer_set(coordinator, subnet_id, auth_keys)
    _report(coordinator.remove_validator(node_id, subnet_id, signers=signers), output)


@subnet.command("transform")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--auth-key", "auth_keys", multiple=True)
@click.option("--output", default=None)
@click.pass_context
@_handle_errors
def subnet_transform(ctx, config_file, auth_keys, output):
    """Make a subnet elastic, using economics from a JSON file."""
    try:
        action = TransformSubnet.from_dict(json.loads(Path(config_file).read_text()))
    except KeyError as e:
        raise click.ClickException(f"elastic subnet config is missing {e}") from e
    coordinator = _coordinator(ctx)
    signers = _subnet_signer_set(coordinator, action.subnet_id, auth_keys)
    _report(coordinator.transform_subnet(action, signers=signers), output)


# ============================================================================
# blockchain
# ============================================================================


@cli.group()
def blockchain():
    """Create blockchains on subnets."""


@blockchain.command("create")
@click.argument("subnet_id")
@click.option("--name", "chain_name", required=True)
@click.option("--vm", "vm_name", required=True)
@click.option("--genesis", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--fx-id", "fx_ids", multiple=True)
@click.option("--auth-key", "auth_keys", multiple=True)
@click.option("--output", default=None)
@click.pass_context
@_handle_errors
def blockchain_create(ctx, subnet_id, chain_name, vm_name, genesis, fx_ids, auth_keys, output):
    """Create a blockchain on a subnet."""
    coordinator = _coordinator(ctx)
    signers = _subnet_signer_set(coordinator, subnet_id, auth_keys)
    outcome = coordinator.create_blockchain(
        subnet_id,
        chain_name,
        vm_name,
        Path(genesis).read_bytes(),
        fx_ids=fx_ids,
        signers=signers,
    )
    _report(outcome, output)


# ============================================================================
# asset
# ============================================================================


@cli.group()
def asset():
    """Create and move X-chain assets."""


@asset.command("create")
@click.option("--name", required=True)
@click.option("--symbol", required=True)
@click.option("--denomination", type=int, default=0, show_default=True)
@click.option("--holder", "holders", multiple=True, required=True, help="ADDRESS=AMOUNT (repeatable)")
@click.pass_context
@_handle_errors
def asset_create(ctx, name, symbol, denomination, holders):
    """Create an asset minted to initial holders."""
    initial = []
    for holder in holders:
        address, sep, amount = holder.partition("=")
        if not sep:
            raise click.BadParameter(f"expected ADDRESS=AMOUNT, got {holder!r}")
        initial.append(
            AssetHolder(
                amount=to_base_units(amount, denomination),
                owners=OutputOwners.single(address),
            )
        )
    outcome = _coordinator(ctx).create_asset(name, symbol, denomination, initial)
    click.echo(f"Asset ID: {outcome.receipt.tx_id}")


@asset.command("export")
@click.argument("asset_id")
@click.argument("amount")
@click.option("--to", "to_addresses", multiple=True, required=True)
@click.option("--threshold", type=int, default=1, show_default=True)
@click.option("--decimals", type=int, default=NATIVE_DENOMINATION, show_default=True)
@click.pass_context
@_handle_errors
def asset_export(ctx, asset_id, amount, to_addresses, threshold, decimals):
    """Export an asset from the X-chain to the P-chain."""
    outcome = _coordinator(ctx).export_asset(
        asset_id,
        to_base_units(amount, decimals),
        _owners(to_addresses, threshold),
    )
    _report(outcome, None)


@asset.command("import")
@click.option("--to", "to_addresses", multiple=True, required=True)
@click.option("--threshold", type=int, default=1, show_default=True)
@click.pass_context
@_handle_errors
def asset_import(ctx, to_addresses, threshold):
    """Import funds exported from the X-chain into the P-chain."""
    _report(_coordinator(ctx).import_asset(_owners(to_addresses, threshold)), None)


# ============================================================================
# transaction
# ============================================================================


@cli.group()
def transaction():
    """Co-sign, commit and inspect partial transactions."""


@transaction.command("sign")
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--no-submit", is_flag=True, help="Only sign, even if the threshold is met")
@click.pass_context
@_handle_errors
def transaction_sign(ctx, tx_file, no_submit):
    """Add the wallet's signatures to a partial transaction."""
    outcome = _coordinator(ctx).cosign(_load_tx(tx_file), submit_when_ready=not no_submit)
    _report(outcome, tx_file)


@transaction.command("commit")
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@_handle_errors
def transaction_commit(ctx, tx_file):
    """Submit a fully signed transaction."""
    _report(_coordinator(ctx).commit(_load_tx(tx_file)), None)


@transaction.command("status")
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False))
@_handle_errors
def transaction_status(tx_file):
    """Show a partial transaction's signature status."""
    ptx = _load_tx(tx_file)
    click.echo(f"Transaction ID: {ptx.tx_id}")
    click.echo(f"Type: {ptx.unsigned.type} ({ptx.unsigned.chain}-chain)")
    click.echo(f"Signatures: {ptx.signature_count}/{ptx.signers.threshold}")
    for address in ptx.signers.addresses:
        mark = "x" if ptx.has_signed(address) else " "
        click.echo(f"  [{mark}] {address}")
    click.echo("Ready to commit" if ptx.is_complete() else "Awaiting co-signers")


if __name__ == "__main__":
    cli()
