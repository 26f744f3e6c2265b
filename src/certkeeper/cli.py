"""
certkeeper CLI
Main entry point for certificate lifecycle runs.

Exit codes:
    0  success (warnings may have been printed)
    1  the identity run failed, or the identity was not found
    2  corrupt store or invalid configuration
"""

import sys
from typing import Optional

import click

from .errors import ConfigError, ConfigMissingError, NotFoundError, StoreError
from .identity.ca.private_ca import VaultPKIClient
from .identity.devices.routeros import RouterOSDeviceClient
from .identity.models import RecordKind
from .identity.notify import EmailNotifier
from .identity.orchestrator import ClientRequest, LifecycleOrchestrator, RunResult, ServerRequest
from .identity.policy_engine import LifecyclePolicy
from .identity.profiles import ClientConfigRenderer
from .identity.store import CertificateStore
from .logging import configure_logging, get_logger
from .utils.config import CertKeeperSettings, get_settings

logger = get_logger(__name__)

EXIT_FAILED = 1
EXIT_CONFIG = 2

KIND_CHOICES = {"users": RecordKind.USER, "servers": RecordKind.SERVER}


# === Collaborator factories ===

def build_authority(settings: CertKeeperSettings) -> VaultPKIClient:
    if not settings.VAULT_TOKEN and not (settings.VAULT_ROLE_ID and settings.VAULT_SECRET_ID):
        raise ConfigMissingError("Vault credentials", "CK_VAULT_TOKEN or CK_VAULT_ROLE_ID/CK_VAULT_SECRET_ID")
    return VaultPKIClient(
        vault_addr=settings.VAULT_ADDR,
        mount_path=settings.VAULT_PKI_MOUNT,
        client_role=settings.VAULT_CLIENT_ROLE,
        server_role=settings.VAULT_SERVER_ROLE,
        role_id=settings.VAULT_ROLE_ID,
        secret_id=settings.VAULT_SECRET_ID,
        token=settings.VAULT_TOKEN,
        verify_ssl=settings.VAULT_VERIFY_TLS,
        timeout=settings.VAULT_TIMEOUT,
    )


def build_device(settings: CertKeeperSettings, address: Optional[str]) -> Optional[RouterOSDeviceClient]:
    host = address or settings.ROUTEROS_ADDRESS
    if not host:
        return None
    if not settings.ROUTEROS_USERNAME:
        raise ConfigMissingError("RouterOS username", "CK_ROUTEROS_USERNAME")
    return RouterOSDeviceClient(
        host=host,
        username=settings.ROUTEROS_USERNAME,
        password=settings.ROUTEROS_PASSWORD or "",
        api_port=settings.ROUTEROS_API_PORT,
        ftp_port=settings.ROUTEROS_FTP_PORT,
        timeout=settings.ROUTEROS_TIMEOUT,
        configure_ovpn=settings.ROUTEROS_CONFIGURE_OVPN,
    )


def build_notifier(settings: CertKeeperSettings) -> Optional[EmailNotifier]:
    if not settings.notifications_enabled():
        return None
    return EmailNotifier(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        sender=settings.SMTP_FROM,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        default_recipient=settings.SMTP_TO,
        starttls=settings.SMTP_STARTTLS,
        timeout=settings.SMTP_TIMEOUT,
    )


def build_renderer(settings: CertKeeperSettings) -> ClientConfigRenderer:
    return ClientConfigRenderer.from_template_file(
        settings.PROFILE_OUTPUT_DIR,
        settings.OVPN_REMOTE,
        settings.OVPN_PORT,
        settings.OVPN_TEMPLATE_PATH,
    )


# === Helpers ===

def _load_store(ctx: click.Context) -> CertificateStore:
    path = ctx.obj["store_path"]
    try:
        return CertificateStore.load(path)
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_CONFIG)


def _report(ctx: click.Context, result: RunResult) -> None:
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)

    if not result.ok:
        click.echo(f"{result.name}: FAILED - {result.error or 'run aborted'}", err=True)
        ctx.exit(EXIT_FAILED)

    line = f"{result.name}: {result.state.value}"
    if result.record is not None:
        line += f" serial={result.record.serial_number} expires={result.record.expires_at.date()}"
    if result.days_remaining is not None:
        line += f" ({result.days_remaining:.1f} days left)"
    click.echo(line)
    if result.artifact_path:
        click.echo(f"Profile: {result.artifact_path}")
    if result.notified:
        click.echo("Notification sent")


# === Commands ===

@click.group()
@click.option("--store", "store_path", default=None, help="Certificate store file (default: CK_STORE_PATH)")
@click.option("--log-level", default=None, help="Log level (default: CK_LOG_LEVEL)")
@click.pass_context
def cli(ctx, store_path, log_level):
    """certkeeper - OpenVPN certificate lifecycle."""
    settings = get_settings()
    configure_logging(level=log_level or settings.LOG_LEVEL, json_format=settings.is_production())
    for issue in settings.validate_production_config():
        logger.warning(issue)
    ctx.obj = {"settings": settings, "store_path": store_path or settings.STORE_PATH}


@cli.command()
@click.argument("name")
@click.option("--email", default=None, help="Contact address for the profile")
@click.option("--ttl", default=None, help="Requested certificate lifetime (e.g. 8760h)")
@click.option("--threshold", type=int, default=None, help="Renew when fewer days remain")
@click.option("--force", is_flag=True, help="Renew even if the certificate is still valid")
@click.option("--resend", is_flag=True, help="Re-send the last profile if nothing changed")
@click.pass_context
def client(ctx, name, email, ttl, threshold, force, resend):
    """Issue or renew a user certificate and deliver its client profile."""
    settings: CertKeeperSettings = ctx.obj["settings"]
    store = _load_store(ctx)
    try:
        authority = build_authority(settings)
        notifier = build_notifier(settings)
        renderer = build_renderer(settings)
    except (ConfigError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_CONFIG)

    orchestrator = LifecycleOrchestrator(
        store=store,
        authority=authority,
        policy=LifecyclePolicy(threshold if threshold is not None else settings.RENEWAL_THRESHOLD_DAYS),
        notifier=notifier,
        renderer=renderer,
        client_ttl=settings.CLIENT_TTL,
        server_ttl=settings.SERVER_TTL,
    )
    result = orchestrator.run_client(
        ClientRequest(name=name, email=email, ttl=ttl, force=force, resend=resend)
    )
    _report(ctx, result)


@cli.command()
@click.argument("name")
@click.option("--ttl", default=None, help="Requested certificate lifetime (e.g. 8760h)")
@click.option("--threshold", type=int, default=None, help="Renew when fewer days remain")
@click.option("--force", is_flag=True, help="Renew even if the certificate is still valid")
@click.option("--device-address", default=None, help="RouterOS device (default: CK_ROUTEROS_ADDRESS)")
@click.pass_context
def server(ctx, name, ttl, threshold, force, device_address):
    """Issue or renew a server certificate and push it to the device."""
    settings: CertKeeperSettings = ctx.obj["settings"]
    store = _load_store(ctx)
    try:
        authority = build_authority(settings)
        device = build_device(settings, device_address)
        notifier = build_notifier(settings)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_CONFIG)

    orchestrator = LifecycleOrchestrator(
        store=store,
        authority=authority,
        policy=LifecyclePolicy(threshold if threshold is not None else settings.RENEWAL_THRESHOLD_DAYS),
        device=device,
        notifier=notifier,
        client_ttl=settings.CLIENT_TTL,
        server_ttl=settings.SERVER_TTL,
    )
    try:
        result = orchestrator.run_server(
            ServerRequest(name=name, ttl=ttl, force=force, device_address=device_address)
        )
    finally:
        if device is not None:
            device.close()
    _report(ctx, result)


@cli.command(name="list")
@click.option("--kind", type=click.Choice(sorted(KIND_CHOICES)), default=None, help="Only one collection")
@click.pass_context
def list_certificates(ctx, kind):
    """List stored certificates and their expiry."""
    store = _load_store(ctx)
    kinds = [KIND_CHOICES[kind]] if kind else [RecordKind.USER, RecordKind.SERVER]

    for record_kind in kinds:
        records = store.list_all(record_kind)
        click.echo(f"{record_kind.value} ({len(records)})")
        for name in sorted(records):
            record = records[name]
            days = record.days_remaining()
            click.echo(
                f"  {name:30} {record.serial_number:40} {record.expires_at.date()} "
                f"{days:8.1f}d  {LifecyclePolicy.expiry_bucket(days)}"
            )


@cli.command()
@click.argument("name")
@click.option("--kind", type=click.Choice(sorted(KIND_CHOICES)), required=True)
@click.pass_context
def delete(ctx, name, kind):
    """Remove a certificate record from the store."""
    settings: CertKeeperSettings = ctx.obj["settings"]
    store = _load_store(ctx)
    record_kind = KIND_CHOICES[kind]
    try:
        store.delete(record_kind, name)
    except NotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_FAILED)

    try:
        store.save()
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_FAILED)

    if record_kind is RecordKind.USER:
        build_renderer(settings).remove(name)
    click.echo(f"Deleted {name} from {kind}")


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    sys.exit(main())
