"""Command-line interface commands."""
import json

from ..core.exceptions import BlockedError
from ..core.logging import get_logger
from ..domain.models import MigrationMode, MigrationRequest
from ..infrastructure.parallel import CancelToken
from ..services.engine import MigrationEngine


def build_request(args, default_mode: MigrationMode) -> MigrationRequest:
    """Build a migration request from parsed arguments."""
    mode = MigrationMode.parse(args.mode) if getattr(args, 'mode', None) else default_mode
    return MigrationRequest(
        source_conn=args.source_conn,
        source_db=args.source_db,
        target_conn=args.target_conn,
        target_db=args.target_db,
        mode=mode,
        selected_tables=frozenset(args.tables or ())
    )


def stats_command(args, engine: MigrationEngine, ui=None) -> int:
    """List the tables of one database."""
    logger = get_logger()

    stats = engine.list_table_stats(args.conn, args.db)
    if getattr(args, 'json', False):
        print(json.dumps([
            {'name': s.name, 'row_count': s.row_count, 'size_bytes': s.size_bytes} for s in stats
        ], indent=2))
    elif ui is not None:
        ui.display_table_stats(f"{args.conn}/{args.db}", stats)

    logger.info(f"{len(stats)} tables in {args.conn}/{args.db}")
    return 0


def precheck_command(args, engine: MigrationEngine, ui=None) -> int:
    """Check a request for conflicts without copying anything."""
    logger = get_logger()

    request = build_request(args, engine.migration_config.mode)
    verdict = engine.precheck(request)

    if getattr(args, 'json', False):
        print(json.dumps({'request': request.to_dict(), 'verdict': verdict.to_dict()}, indent=2))

    if verdict.blocked:
        logger.warning(f"Precheck blocked by {len(verdict.blocking_checks)} table(s)")
        return 1
    logger.info("Precheck passed")
    return 0


def migrate_command(args, engine: MigrationEngine, ui=None, cancel_token: CancelToken = None) -> int:
    """Precheck a request and, when it is clear, copy its tables."""
    logger = get_logger()
    cancel_token = cancel_token or CancelToken()

    request = build_request(args, engine.migration_config.mode)
    run = engine.new_run(request)

    verdict = run.precheck(engine.detector)
    if ui is not None:
        ui.display_verdict(verdict)

    if verdict.blocked:
        logger.error(f"Migration blocked by {len(verdict.blocking_checks)} table(s)")
        if getattr(args, 'json', False):
            print(json.dumps(run.to_dict(), indent=2))
        return 1

    try:
        outcomes = run.execute(engine.coordinator, args.exclude or (), cancel_token)
    except BlockedError as e:
        # Target changed between the precheck and the run
        logger.error(str(e))
        if ui is not None:
            ui.display_verdict(e.verdict)
        if getattr(args, 'json', False):
            print(json.dumps(run.to_dict(), indent=2))
        return 1

    if getattr(args, 'json', False):
        print(json.dumps(run.to_dict(), indent=2))
    elif ui is not None and outcomes:
        ui.display_summary(outcomes)

    if cancel_token.is_cancelled():
        logger.warning("Migration cancelled")
        return 1
    if run.failed:
        logger.warning(f"{len(run.failed)} of {len(outcomes)} tables failed")
        return 1
    logger.info(f"Migration completed: {len(run.succeeded)} tables")
    return 0
