import asyncio
import dataclasses
import json
from pathlib import Path

import click

from .config import LibrarianConfig, get_logger
from .github.webhook import parse_payload
from .publish.workflow import load_request
from .services import LibraryServices
from .sync.error_tracker import PublishError

logger = get_logger(__name__)


def load_config() -> LibrarianConfig:
    try:
        return LibrarianConfig.from_environment()
    except ValueError as e:
        raise click.ClickException(str(e))


@click.group()
def cli():
    """Content library mirror and publisher."""
    pass

# Reconcile command, receives a push payload (the JSON body of a webhook delivery) and applies it to the local mirror
@cli.command(name='reconcile')
@click.argument('payload_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--any-ref', is_flag=True, default=False, help='Apply the commits even if the push is not to the base branch')
def reconcile(payload_file, any_ref):
    """Apply a push payload to the local mirror and metadata."""
    try:
        payload = parse_payload(Path(payload_file).read_bytes())
    except ValueError as e:
        raise click.ClickException(f"Invalid payload file: {e}")

    config = load_config()

    async def run():
        async with LibraryServices(config, run_sweep=False) as services:
            if any_ref:
                return await services.engine.process(payload.commits)
            return await services.engine.process_payload(payload)

    report = asyncio.run(run())
    click.echo(json.dumps(dataclasses.asdict(report), indent=2))
    if report.failed_operations or report.has_critical_errors:
        raise SystemExit(1)

@cli.command(name='publish')
@click.argument('collection_path', type=click.STRING)
@click.argument('json_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--image', 'image_file', type=click.Path(exists=True, dir_okay=False), help='PNG image to publish with the item')
def publish(collection_path, json_file, image_file):
    """Publish an item to the content repository and print the pull request URL."""
    config = load_config()

    async def run():
        async with LibraryServices(config, run_sweep=False) as services:
            request = load_request(collection_path, json_file, image_file)
            return await services.publisher.publish(collection_path, request)

    try:
        url = asyncio.run(run())
    except PublishError as e:
        logger.error(f"Error publishing {json_file}: {e.message}")
        raise click.ClickException(e.message)
    click.echo(url)

@cli.command(name='history')
@click.argument('path', type=click.STRING)
@click.option('--sha', type=click.STRING, default=None, help='Print the file content at this revision instead')
def history(path, sha):
    """Show the version history of a content file."""
    config = load_config()

    async def run():
        async with LibraryServices(config, run_sweep=False) as services:
            if sha:
                return await services.history.fetch_at_commit(path, sha)
            versions = await services.history.refresh_versions(services.store, path)
            return [v.model_dump() for v in versions]

    result = asyncio.run(run())
    if result is None:
        raise click.ClickException(f"{path} not found at {sha}")
    if isinstance(result, bytes):
        click.echo(f"{len(result)} bytes")
    else:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))

@cli.command(name='library')
@click.argument('collection_path', type=click.STRING)
def library(collection_path):
    """Print the metadata of a collection."""
    config = load_config()

    async def run():
        async with LibraryServices(config, run_sweep=False) as services:
            return [item.to_dict() for item in await services.store.get(collection_path)]

    click.echo(json.dumps(asyncio.run(run()), indent=2, ensure_ascii=False))

def main():
    cli()

if __name__ == '__main__':
    main()
