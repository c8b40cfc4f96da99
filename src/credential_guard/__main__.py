# Command Line Entry Point
#
# credential-guard <command>
#
# Passwords are always read with getpass. Secrets are printed only by
# `reveal`; passphrases and key material are never printed.

import argparse
import getpass
import logging
import sys

from . import config
from .app import AuthState, CredentialSecurity
from .config import Settings
from .errors import AuthenticationFailure, CredentialGuardError, KeyUnavailable
from .store.models import Category


def _unlock(security: CredentialSecurity) -> bool:
    if security.auth_state is AuthState.FIRST_LAUNCH:
        print("No master password set. Run `credential-guard init` first.", file=sys.stderr)
        return False
    ok, message = security.unlock(getpass.getpass("Master password: "))
    if not ok:
        print(message, file=sys.stderr)
    return ok


def cmd_status(security: CredentialSecurity, settings: Settings, args) -> int:
    print(f"Data directory:    {settings.data_dir}")
    print(f"Vault backend:     {settings.vault_backend}")
    print(f"Master password:   {'set' if security.master.is_master_password_set() else 'not set'}")
    print(f"Biometric unlock:  {'enabled' if security.master.is_biometric_enabled() else 'disabled'}")
    print(f"DB passphrase:     {'present' if security.passphrases.get() else 'not created'}")
    print(f"Field key:         {'present' if security.key_provider.has_key() else 'missing'}")
    return 0


def cmd_init(security: CredentialSecurity, settings: Settings, args) -> int:
    if security.auth_state is not AuthState.FIRST_LAUNCH:
        print("Master password already set.", file=sys.stderr)
        return 1
    password = getpass.getpass("New master password: ")
    if getpass.getpass("Repeat master password: ") != password:
        print("Passwords do not match.", file=sys.stderr)
        return 1
    ok, message = security.set_master_password(password)
    print(message, file=sys.stdout if ok else sys.stderr)
    return 0 if ok else 1


def cmd_verify(security: CredentialSecurity, settings: Settings, args) -> int:
    if not _unlock(security):
        return 1
    print("Master password OK")
    return 0


def cmd_add(security: CredentialSecurity, settings: Settings, args) -> int:
    if not _unlock(security):
        return 1
    repo = security.open_store(settings.store_path)
    secret = getpass.getpass("Secret to store: ")
    record = repo.add(
        title=args.title,
        username=args.username,
        secret=secret,
        category=Category.from_name(args.category),
        url=args.url,
        note=args.note,
    )
    print(record.id)
    return 0


def cmd_list(security: CredentialSecurity, settings: Settings, args) -> int:
    if not _unlock(security):
        return 1
    repo = security.open_store(settings.store_path)
    records = repo.search(args.query) if args.query else repo.list_all()
    for record in records:
        print(f"{record.id}  {record.category.value:<8} {record.title}  ({record.username})")
    return 0


def cmd_reveal(security: CredentialSecurity, settings: Settings, args) -> int:
    if not _unlock(security):
        return 1
    repo = security.open_store(settings.store_path)
    secret = repo.reveal_secret(args.record_id)
    if secret is None:
        print(f"No credential with id {args.record_id}", file=sys.stderr)
        return 1
    print(secret)
    return 0


def cmd_rotate(security: CredentialSecurity, settings: Settings, args) -> int:
    if not args.yes:
        print("Refusing to rotate without --yes: the credential store will be deleted.", file=sys.stderr)
        return 1
    if not _unlock(security):
        return 1
    security.rotate_database_passphrase(settings.store_path)
    print("Database passphrase rotated; previous credential store deleted.")
    return 0


def cmd_reset(security: CredentialSecurity, settings: Settings, args) -> int:
    if not args.yes:
        print("Refusing to reset without --yes: all stored credentials will be lost.", file=sys.stderr)
        return 1
    security.reset(settings.store_path)
    print("All credential security state erased.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credential-guard",
        description="Local credential security core (no network transmission)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{config.APP_NAME} v{config.APP_VERSION}",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with CREDENTIAL_GUARD_* settings",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show security state (never shows secrets)").set_defaults(func=cmd_status)
    sub.add_parser("init", help="Set the master password on first launch").set_defaults(func=cmd_init)
    sub.add_parser("verify", help="Check the master password").set_defaults(func=cmd_verify)

    add = sub.add_parser("add", help="Store a new credential")
    add.add_argument("title")
    add.add_argument("username")
    add.add_argument("--category", default=Category.OTHER.value,
                     choices=[c.value for c in Category])
    add.add_argument("--url")
    add.add_argument("--note")
    add.set_defaults(func=cmd_add)

    lst = sub.add_parser("list", help="List or search credentials")
    lst.add_argument("query", nargs="?", default="")
    lst.set_defaults(func=cmd_list)

    reveal = sub.add_parser("reveal", help="Decrypt and print one secret")
    reveal.add_argument("record_id")
    reveal.set_defaults(func=cmd_reveal)

    rotate = sub.add_parser("rotate-db-passphrase", help="Replace the database passphrase (destructive)")
    rotate.add_argument("--yes", action="store_true")
    rotate.set_defaults(func=cmd_rotate)

    reset = sub.add_parser("reset", help="Erase all credential security state (destructive)")
    reset.add_argument("--yes", action="store_true")
    reset.set_defaults(func=cmd_reset)

    return parser


def main(argv=None) -> int:
    """Main entry point for credential-guard."""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env(args.env_file)
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.WARNING))

    try:
        security = CredentialSecurity.from_settings(settings)
        return args.func(security, settings, args)
    except KeyUnavailable as e:
        print(f"Error: {e}. Run `credential-guard reset --yes`.", file=sys.stderr)
        return 2
    except AuthenticationFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except CredentialGuardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
