#!/usr/bin/env python3
"""Backup management CLI for the newsdesk store.

Create, verify, restore and prune backups of the newsdesk SQLite database
and data directory.

USAGE:
    backup_manager.py create [--type full|incremental] [--description TEXT]
    backup_manager.py list [--type T] [--status S] [--limit N] [--offset N] [--json]
    backup_manager.py verify <backup-id>
    backup_manager.py restore [<backup-id>] [--target DIR] [--no-verify] [--no-preserve] [--no-replay]
    backup_manager.py delete <backup-id>
    backup_manager.py cleanup
    backup_manager.py stats [--json]
    backup_manager.py export [--format json|csv] [--table NAME] [--output DIR]
    backup_manager.py test
    backup_manager.py config [--json]
    backup_manager.py daemon

ENVIRONMENT VARIABLES:
    NEWSDESK_BACKUP_BACKUP_DIR      Backup directory (default: ./data/backups)
    NEWSDESK_BACKUP_DATA_DIR        Data directory (default: ./data)
    NEWSDESK_BACKUP_DATABASE_PATH   SQLite database (default: ./data/newsdesk.db)
    NEWSDESK_BACKUP_RETENTION_DAYS  Days to keep each backup (default: 30)
    NEWSDESK_BACKUP_AUTO_BACKUP_INTERVAL  Seconds between daemon backups (0 disables)

    Any BackupConfig field can be set as NEWSDESK_BACKUP_<FIELD>. Values
    may also come from a .env file (--env-file). Command-line flags win.

EXIT CODES:
    0 on success, 1 on any error (message on stderr).
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import pydantic

from newsdesk_db.backup import (
    AutoBackupScheduler,
    BackupConfig,
    BackupRecord,
    BackupService,
    BackupStatus,
    BackupType,
    RecordFilter,
    RestoreOptions,
)
from newsdesk_db.exceptions import NewsdeskError


def format_size(size: int) -> str:
    """Format a byte count for humans."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def print_record(record: BackupRecord) -> None:
    print(f"ID:        {record.id}")
    print(f"Type:      {record.type.value}")
    print(f"Status:    {record.status.value}")
    print(f"File:      {record.filename or '-'}")
    print(f"Size:      {format_size(record.size)}")
    print(f"Checksum:  {record.checksum or '-'}")
    print(f"Created:   {record.created_at.isoformat()}")
    if record.completed_at:
        print(f"Completed: {record.completed_at.isoformat()}")
    if record.verified_at:
        print(f"Verified:  {record.verified_at.isoformat()}")
    if record.base_backup_id:
        print(f"Baseline:  {record.base_backup_id}")
    for key, value in sorted(record.metadata.items()):
        print(f"  {key}: {value}")


async def cmd_create(service: BackupService, backup_type: str, description: Optional[str]) -> int:
    record = await service.create_backup(BackupType(backup_type), description=description)
    if record.is_skipped:
        print(f"No changes since baseline; backup {record.id} skipped")
    else:
        print(f"Backup created: {record.id}")
    print_record(record)
    return 0


async def cmd_list(
    service: BackupService,
    backup_type: Optional[str],
    status: Optional[str],
    limit: Optional[int],
    offset: int,
    as_json: bool,
) -> int:
    record_filter = RecordFilter(
        type=BackupType(backup_type) if backup_type else None,
        status=BackupStatus(status) if status else None,
    )
    records = await service.list_backups(record_filter, limit=limit, offset=offset)

    if as_json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return 0

    if not records:
        print("No backups found")
        return 0

    print(f"\n{'ID':<40} {'Type':<12} {'Status':<10} {'Size':>10}  {'Created':<20}")
    print("-" * 98)
    for record in records:
        created = record.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"{record.id:<40} {record.type.value:<12} {record.status.value:<10} "
            f"{format_size(record.size):>10}  {created:<20}"
        )
    print(f"\nTotal: {len(records)} backups")
    return 0


async def cmd_verify(service: BackupService, backup_id: str) -> int:
    record = await service.verify_backup(backup_id)
    print(f"Backup {record.id} verified")
    print(f"Checksum: {record.checksum or '-'}")
    return 0


async def cmd_restore(
    service: BackupService,
    backup_id: Optional[str],
    target: Optional[str],
    verify: bool,
    preserve: bool,
    replay: bool,
) -> int:
    result = await service.restore_backup(
        RestoreOptions(
            backup_id=backup_id,
            target_dir=target,
            verify_before_restore=verify,
            preserve_existing=preserve,
            restore_database=replay,
        )
    )
    if result.skipped:
        print(f"Backup {result.backup_id} has no archive; nothing to restore")
        return 0
    print(f"Restored {result.backup_id} into {result.target_dir}")
    print(f"Files restored: {result.files_restored}")
    if result.snapshot_path:
        print(f"Pre-restore snapshot: {result.snapshot_path}")
    if result.database_restored:
        print(f"Database restored: {service.config.database_path}")
        if result.replayed_statements:
            print(f"Statements replayed: {result.replayed_statements}")
    return 0


async def cmd_delete(service: BackupService, backup_id: str) -> int:
    await service.delete_backup(backup_id)
    print(f"Backup {backup_id} deleted")
    return 0


async def cmd_cleanup(service: BackupService) -> int:
    results = await service.cleanup()
    print(
        f"Removed {results['deleted']} backups "
        f"(age: {results['by_age']}, count: {results['by_count']}, size: {results['by_size']}), "
        f"freed {format_size(results['bytes_freed'])}"
    )
    for failure in results["errors"]:
        print(f"ERROR: {failure['backup_id']}: {failure['error']}", file=sys.stderr)
    return 1 if results["errors"] else 0


async def cmd_stats(service: BackupService, as_json: bool) -> int:
    stats = await service.get_stats()
    if as_json:
        print(json.dumps(stats, indent=2))
        return 0
    print(f"Backups:      {stats['total_backups']}")
    print(f"Total size:   {format_size(stats['total_size'])}")
    print(f"Average size: {format_size(stats['average_size'])}")
    print(f"Oldest:       {stats['oldest'] or '-'}")
    print(f"Newest:       {stats['newest'] or '-'}")
    for label, key in (("By type", "by_type"), ("By status", "by_status")):
        counts = ", ".join(f"{k}={v}" for k, v in sorted(stats[key].items())) or "-"
        print(f"{label + ':':<13} {counts}")
    return 0


async def cmd_export(
    service: BackupService, fmt: str, table: Optional[str], output: Optional[str]
) -> int:
    files = await service.export_data(fmt, table=table, output_dir=Path(output) if output else None)
    if not files:
        print("No rows to export")
        return 0
    for path in files:
        print(f"Exported: {path}")
    print(f"Total: {len(files)} files")
    return 0


async def cmd_test(service: BackupService) -> int:
    """Round-trip a throwaway backup through create, verify, list, stats and delete."""
    print("1. Creating backup...")
    record = await service.create_backup(BackupType.FULL, description="self-test")
    print(f"   {record.id} ({record.status.value}, {format_size(record.size)})")

    print("2. Verifying backup...")
    record = await service.verify_backup(record.id)
    print(f"   checksum {record.checksum or '-'}")

    print("3. Listing backups...")
    listed = await service.list_backups()
    if record.id not in {r.id for r in listed}:
        raise ValueError(f"Backup {record.id} missing from listing")
    print(f"   {len(listed)} backups")

    print("4. Reading statistics...")
    stats = await service.get_stats()
    print(f"   {stats['total_backups']} backups, {format_size(stats['total_size'])}")

    print("5. Deleting backup...")
    await service.delete_backup(record.id)

    print("Self-test passed")
    return 0


def cmd_config(config: BackupConfig, as_json: bool) -> int:
    summary = config.summary()
    if as_json:
        print(json.dumps(summary, indent=2))
        return 0
    for key, value in summary.items():
        print(f"{key:<22} {value}")
    return 0


async def cmd_daemon(service: BackupService) -> int:
    scheduler = AutoBackupScheduler(service)
    if not scheduler.enabled:
        print("ERROR: NEWSDESK_BACKUP_AUTO_BACKUP_INTERVAL must be greater than 0", file=sys.stderr)
        return 1
    await scheduler.run_forever()
    return 0


async def dispatch(args: argparse.Namespace, service: BackupService) -> int:
    if args.command == "create":
        return await cmd_create(service, args.type, args.description)
    if args.command == "list":
        return await cmd_list(service, args.type, args.status, args.limit, args.offset, args.json)
    if args.command == "verify":
        return await cmd_verify(service, args.backup_id)
    if args.command == "restore":
        return await cmd_restore(
            service,
            args.backup_id,
            args.target,
            not args.no_verify,
            not args.no_preserve,
            not args.no_replay,
        )
    if args.command == "delete":
        return await cmd_delete(service, args.backup_id)
    if args.command == "cleanup":
        return await cmd_cleanup(service)
    if args.command == "stats":
        return await cmd_stats(service, args.json)
    if args.command == "export":
        return await cmd_export(service, args.format, args.table, args.output)
    if args.command == "test":
        return await cmd_test(service)
    if args.command == "daemon":
        return await cmd_daemon(service)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backup management CLI for the newsdesk store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
  Create a full backup:
    %(prog)s create --description "before migration"

  List verified backups as JSON:
    %(prog)s list --status verified --json

  Restore the latest backup into a scratch directory:
    %(prog)s restore --target /tmp/newsdesk-restore

  Export every table as CSV:
    %(prog)s export --format csv
        """,
    )

    parser.add_argument("--backup-dir", help="Backup directory (overrides NEWSDESK_BACKUP_BACKUP_DIR)")
    parser.add_argument("--data-dir", help="Data directory (overrides NEWSDESK_BACKUP_DATA_DIR)")
    parser.add_argument("--database", help="SQLite database file (overrides NEWSDESK_BACKUP_DATABASE_PATH)")
    parser.add_argument("--env-file", help="Optional .env file with NEWSDESK_BACKUP_* settings")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging output for debugging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=False)

    create = subparsers.add_parser("create", help="Create a backup")
    create.add_argument(
        "--type", "-t",
        choices=[t.value for t in BackupType],
        default=BackupType.FULL.value,
        help="Backup type. Default: %(default)s",
    )
    create.add_argument("--description", "-d", help="Free-text note stored with the backup")

    list_parser = subparsers.add_parser("list", help="List backups, newest first")
    list_parser.add_argument("--type", choices=[t.value for t in BackupType])
    list_parser.add_argument("--status", choices=[s.value for s in BackupStatus])
    list_parser.add_argument("--limit", type=int)
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.add_argument("--json", action="store_true", help="Output JSON for scripts")

    verify = subparsers.add_parser("verify", help="Verify a backup archive")
    verify.add_argument("backup_id")

    restore = subparsers.add_parser("restore", help="Restore a backup")
    restore.add_argument("backup_id", nargs="?", help="Backup to restore (default: latest)")
    restore.add_argument("--target", help="Target directory (default: data directory)")
    restore.add_argument("--no-verify", action="store_true", help="Skip verification before restoring")
    restore.add_argument(
        "--no-preserve", action="store_true", help="Skip the pre-restore snapshot and rollback"
    )
    restore.add_argument(
        "--no-replay", action="store_true", help="Restore files only, leave the database untouched"
    )

    delete = subparsers.add_parser("delete", help="Delete a backup and its archive")
    delete.add_argument("backup_id")

    subparsers.add_parser("cleanup", help="Apply the retention policy now")

    stats = subparsers.add_parser("stats", help="Show backup statistics")
    stats.add_argument("--json", action="store_true")

    export = subparsers.add_parser("export", help="Export tables as JSON or CSV files")
    export.add_argument(
        "--format", "-f",
        choices=["json", "csv"],
        default="json",
        help="Output format. Default: %(default)s",
    )
    export.add_argument("--table", help="Export only this table")
    export.add_argument("--output", "-o", help="Output directory (default: <backup-dir>/exports)")

    subparsers.add_parser("test", help="Create, verify, list and delete a throwaway backup")

    config = subparsers.add_parser("config", help="Show the effective configuration")
    config.add_argument("--json", action="store_true")

    subparsers.add_parser("daemon", help="Run automatic backups until interrupted")

    return parser


def main() -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    # Log output would mix with command output; keep it for the daemon
    if not args.verbose and args.command != "daemon":
        logging.disable(logging.CRITICAL)

    try:
        config = BackupConfig.from_env(
            env_file=args.env_file,
            overrides={
                "BACKUP_DIR": args.backup_dir,
                "DATA_DIR": args.data_dir,
                "DATABASE_PATH": args.database,
            },
        )
    except pydantic.ValidationError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.command == "config":
        return cmd_config(config, args.json)

    try:
        service = BackupService(config)
        return asyncio.run(dispatch(args, service))
    except NewsdeskError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
