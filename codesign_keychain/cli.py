"""Command-line interface for ephemeral keychain setup and cleanup."""

import logging
import sys

import click

from . import __version__, actions
from .backends.security_cli import SecurityCLIBackend
from .config import load_config, load_default_config, ConfigError
from .identity import DEFAULT_IDENTITY_PREFIX, parse_identity_listing
from .keychain import ProvisioningError
from .orchestrator import KeychainOrchestrator
from .payload import CertificatePayload, PayloadError
from .resolver import IdentityNotFoundError
from .search_list import SearchMode
from .state import FileStateCarrier, default_state_carrier
from .teardown import StepStatus, TeardownExecutor


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show every keychain command")
def main(verbose):
    """Ephemeral keychain for code signing on macOS runners."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


@main.command()
@click.option(
    "--certificate",
    required=True,
    envvar=["INPUT_APPLE-CERTIFICATE", "APPLE_CERTIFICATE"],
    help="Base64 PKCS#12 certificate and key",
)
@click.option(
    "--certificate-password",
    required=True,
    envvar=["INPUT_APPLE-CERTIFICATE-PASSWORD", "APPLE_CERTIFICATE_PASSWORD"],
    help="Passphrase of the PKCS#12 certificate",
)
@click.option(
    "--identity-prefix",
    envvar=["INPUT_IDENTITY-PREFIX"],
    help=f"Signing identity name prefix (default: {DEFAULT_IDENTITY_PREFIX})",
)
@click.option(
    "--search-mode",
    type=click.Choice([m.value for m in SearchMode]),
    help="Add the keychain next to the existing ones, or make it the only one",
)
@click.option("--keychain-name", help="Fixed keychain file name (default: per-run name)")
@click.option("--auto-lock-seconds", type=int, help="Lock the keychain after this many seconds")
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    help="Save cleanup state to this JSON file instead of the action state",
)
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Configuration file (YAML). Defaults to .signing/keychain.yaml if present.",
)
def setup(
    certificate,
    certificate_password,
    identity_prefix,
    search_mode,
    keychain_name,
    auto_lock_seconds,
    state_file,
    config,
):
    """Create the keychain, import the certificate and resolve the identity."""
    try:
        try:
            keychain_config = load_config(config) if config else load_default_config()
            keychain_config = keychain_config.apply_environment_overrides()
            keychain_config = keychain_config.merge_with_cli_args(
                keychain_name=keychain_name,
                search_mode=search_mode,
                auto_lock_seconds=auto_lock_seconds,
                identity_prefix=identity_prefix,
            )
        except (FileNotFoundError, ConfigError) as e:
            actions.error(f"Config error: {e}")
            sys.exit(1)

        payload = CertificatePayload.from_base64(certificate, certificate_password)
        orchestrator = KeychainOrchestrator(
            SecurityCLIBackend(),
            default_state_carrier(state_file),
            keychain_config,
        )

        result = orchestrator.setup(payload)

        for name, value in result.outputs().items():
            actions.set_output(name, value)

        click.echo(f"✅ Keychain ready: {result.keychain.path}")
        click.echo(f"✅ Identity: {result.resolution.identity_id}")
        if result.resolution.repaired:
            click.echo("   (matched after trusting the certificate in the keychain)")

    except IdentityNotFoundError as e:
        actions.warning("No matching identity found. Printing all identities for debugging.")
        click.echo(e.listing or "(no identities listed)")
        actions.error(str(e))
        sys.exit(1)
    except (PayloadError, ProvisioningError) as e:
        actions.error(str(e))
        sys.exit(1)
    except Exception as e:
        actions.error(f"Keychain setup failed: {e}")
        sys.exit(1)


@main.command()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    help="JSON state file written by setup (default: the action state)",
)
def cleanup(state_file):
    """Delete the keychain and restore the keychain search list.

    Never fails the job: problems are reported as warnings.
    """
    try:
        carrier = default_state_carrier(state_file)
        state = carrier.load()
        if state.is_empty:
            actions.warning("No keychain state found; nothing to clean up")
            return

        report = TeardownExecutor(SecurityCLIBackend()).run(state)

        for result in report.results:
            if result.status is StepStatus.OK:
                click.echo(f"✅ {result.step}")
            elif result.status is StepStatus.SKIPPED:
                click.echo(f"-  {result.step} skipped: {result.reason}")
            else:
                actions.warning(f"{result.step} failed: {result.reason}")

        if isinstance(carrier, FileStateCarrier):
            carrier.discard()

    except Exception as e:
        actions.warning(f"Keychain cleanup failed: {e}")


@main.command()
@click.argument("keychain")
@click.option(
    "--prefix",
    default=DEFAULT_IDENTITY_PREFIX,
    show_default=True,
    help="Mark identities whose name starts with this prefix",
)
def identities(keychain, prefix):
    """List code-signing identities in KEYCHAIN."""
    try:
        listing = SecurityCLIBackend().find_identity(keychain)
    except Exception as e:
        click.echo(f"❌ Failed to list identities: {e}", err=True)
        sys.exit(1)

    parsed = parse_identity_listing(listing)
    if not parsed:
        click.echo("No valid signing identities found")
        return

    for identity in parsed:
        marker = "*" if identity.matches(prefix) else " "
        click.echo(f"{marker} {identity.fingerprint}  {identity.display_name}")


@main.command()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    help="JSON state file written by setup (default: the action state)",
)
def info(state_file):
    """Show what cleanup would do with the saved state."""
    try:
        state = default_state_carrier(state_file).load()
    except RuntimeError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"Keychain: {state.keychain_path or '(none)'}")
    click.echo(f"Password saved: {'yes' if state.unlock_secret else 'no'}")
    click.echo(f"Default keychain: {state.default_keychain or '(login keychain)'}")
    click.echo(f"Trusted certificate: {'yes' if state.trusted_certificate else 'no'}")
    click.echo("Search list:")
    if state.search_list is None:
        click.echo("  (not captured)")
    elif not state.search_list:
        click.echo("  (empty)")
    for entry in state.search_list or ():
        click.echo(f"  {entry}")

    click.echo("\nCleanup steps:")
    for step, will_run in TeardownExecutor(SecurityCLIBackend()).plan(state):
        click.echo(f"  {'run ' if will_run else 'skip'}  {step}")


if __name__ == "__main__":
    main()
