"""
pgds CLI - inspect and edit a SQL-backed datastore

Main entry point for all CLI commands.
"""

import logging
import sys

import click

from pgds.core import (
    BackendError,
    FilterValueCompare,
    NotFoundError,
    Op,
    OrderByKey,
    OrderByKeyDescending,
    OrderByValue,
    OrderByValueDescending,
    Query,
)
from pgds.core.config import load_connection_string, load_options
from pgds.core.datastore import open_datastore
from pgds.utils.logger import get_logger, setup_logging

logger = get_logger("cli")

ORDERS = {
    "key": OrderByKey,
    "key-desc": OrderByKeyDescending,
    "value": OrderByValue,
    "value-desc": OrderByValueDescending,
}


def _open(ctx):
    """Open the datastore lazily, once per invocation."""
    if ctx.obj.get("store") is None:
        dsn = ctx.obj["dsn"] or load_connection_string(ctx.obj["env_file"])
        if not dsn:
            raise click.UsageError("no connection string: pass --dsn or set PGDS_DSN")
        options = load_options(ctx.obj["env_file"], table=ctx.obj["table"])
        ctx.obj["store"] = open_datastore(dsn, options)
        ctx.call_on_close(ctx.obj["store"].close)
    return ctx.obj["store"]


def _emit_value(value: bytes, as_hex: bool):
    if as_hex:
        click.echo(value.hex())
    else:
        stream = click.get_binary_stream("stdout")
        stream.write(value)
        stream.flush()


@click.group()
@click.option("--dsn", default=None, help="Connection string (default: $PGDS_DSN)")
@click.option("--table", default=None, help="Table name (default: $PGDS_TABLE or 'blocks')")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help=".env file to load")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, dsn, table, env_file, debug):
    """pgds - key/value datastore on a single SQL table"""
    setup_logging(level=logging.DEBUG if debug else logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["dsn"] = dsn
    ctx.obj["table"] = table
    ctx.obj["env_file"] = env_file
    ctx.obj["store"] = None


# =============================================================================
# Single Key Commands
# =============================================================================


@cli.command("get")
@click.argument("key")
@click.option("--hex", "as_hex", is_flag=True, help="Print the value as hex")
@click.pass_context
def get_cmd(ctx, key, as_hex):
    """Print the value stored under KEY"""
    store = _open(ctx)
    try:
        value = store.get(key)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    _emit_value(value, as_hex)


@cli.command("put")
@click.argument("key")
@click.argument("value", required=False)
@click.option("--file", "path", type=click.File("rb"), help="Read the value from a file ('-' for stdin)")
@click.pass_context
def put_cmd(ctx, key, value, path):
    """Store VALUE (or the contents of --file) under KEY"""
    if (value is None) == (path is None):
        raise click.UsageError("give exactly one of VALUE or --file")
    data = path.read() if path is not None else value.encode()
    _open(ctx).put(key, data)
    click.echo(f"✓ {key} ({len(data)} bytes)")


@cli.command("delete")
@click.argument("key")
@click.pass_context
def delete_cmd(ctx, key):
    """Delete KEY (no error if it does not exist)"""
    _open(ctx).delete(key)
    click.echo(f"✓ deleted {key}")


@cli.command("has")
@click.argument("key")
@click.pass_context
def has_cmd(ctx, key):
    """Exit 0 if KEY exists, 1 otherwise"""
    exists = _open(ctx).has(key)
    click.echo("yes" if exists else "no")
    ctx.exit(0 if exists else 1)


@cli.command("size")
@click.argument("key")
@click.pass_context
def size_cmd(ctx, key):
    """Print the size in bytes of the value under KEY"""
    try:
        size = _open(ctx).get_size(key)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(str(size))


# =============================================================================
# Query Command
# =============================================================================


@cli.command("query")
@click.option("--prefix", default="", help="Only keys below this prefix")
@click.option("--keys-only", is_flag=True, help="Do not fetch values")
@click.option("--sizes", is_flag=True, help="Show value sizes")
@click.option("--limit", default=0, type=click.IntRange(min=0), help="Maximum results (0 = all)")
@click.option("--offset", default=0, type=click.IntRange(min=0), help="Results to skip")
@click.option("--order", "orders", multiple=True, type=click.Choice(sorted(ORDERS)), help="Sort order (repeatable)")
@click.option("--value-equals", default=None, help="Only entries whose value equals this string")
@click.pass_context
def query_cmd(ctx, prefix, keys_only, sizes, limit, offset, orders, value_equals):
    """List entries, one per line"""
    filters = []
    if value_equals is not None:
        filters.append(FilterValueCompare(Op.EQUAL, value_equals.encode()))

    q = Query(
        prefix=prefix,
        filters=filters,
        orders=[ORDERS[o]() for o in orders],
        limit=limit,
        offset=offset,
        keys_only=keys_only,
        returns_sizes=sizes,
    )

    count = 0
    with _open(ctx).query(q) as results:
        for result in results:
            if result.error is not None:
                raise click.ClickException(str(result.error))
            entry = result.entry
            line = entry.key
            if entry.size is not None:
                line += f"\t{entry.size}"
            if entry.value is not None:
                line += f"\t{entry.value.hex()}"
            click.echo(line)
            count += 1
    logger.debug(f"Query returned {count} entries")


def main():
    try:
        cli(obj={})
    except BackendError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


if __name__ == "__main__":
    main()
