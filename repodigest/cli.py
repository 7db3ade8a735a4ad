"""
Command-line interface for repodigest.

Provides commands for producing repository digests, tree views and
single-file reads from local, GitHub and GitLab repositories, and for
finding repositories to ingest.
"""

import asyncio
import sys
from pathlib import Path

import click

from repodigest import __version__
from repodigest.core.config import Config
from repodigest.core.exceptions import RepoDigestError
from repodigest.ingestion.formatter import JSONSummaryFormatter, TextDigestFormatter
from repodigest.utils.logging_config import configure_logging


def _run(ctx, call):
    """Run one call against the tool surface, exiting with an error message on failure."""
    from repodigest.tools import ToolSurface

    try:
        surface = ToolSurface(Config.get())
        return asyncio.run(call(surface))
    except RepoDigestError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        if ctx.obj.get("verbose"):
            import traceback
            traceback.print_exc()
        sys.exit(1)


def _run_tool(ctx, name: str, arguments: dict) -> dict:
    return _run(ctx, lambda surface: surface.call(name, arguments))


def _filter_arguments(ref, include, exclude) -> dict:
    return {
        "git_ref": ref,
        "include_patterns": list(include),
        "exclude_patterns": list(exclude),
    }


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.option(
    "--log-file",
    type=click.Path(),
    help="Path to log file"
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a JSON configuration file"
)
@click.pass_context
def cli(ctx, verbose, log_file, config_path):
    """
    repodigest

    Flatten a local, GitHub or GitLab repository into a single text
    digest for a language-model context window.
    """
    ctx.ensure_object(dict)

    if config_path:
        Config.load_from_file(config_path)
    config = Config.load_from_env()

    ctx.obj["verbose"] = verbose or config.verbose
    configure_logging(config, verbose=verbose, log_file=Path(log_file) if log_file else None)


@cli.command()
@click.argument("repo")
@click.option("--ref", "-r", help="Branch, tag or commit (tag:<name>, branch:<name>, commit:<sha>)")
@click.option("--include", "-i", multiple=True, help="Glob pattern to include (repeatable)")
@click.option("--exclude", "-e", multiple=True, help="Glob pattern to exclude (repeatable)")
@click.option("--max-file-size", type=int, help="Skip files larger than this many bytes")
@click.option("--max-total-size", type=int, help="Stop adding files past this many bytes")
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Write the output to a file instead of stdout"
)
@click.option(
    "--format", "-f",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text)"
)
@click.pass_context
def digest(ctx, repo, ref, include, exclude, max_file_size, max_total_size, output, format):
    """
    Produce the digest of a repository.

    REPO can be a local path, a GitHub or GitLab URL, or a
    github:owner/name / gitlab:group/project identifier.

    Examples:

        repodigest digest ./my-project

        repodigest digest https://github.com/user/repo -e tests -o digest.txt

        repodigest digest gitlab:group/project --ref tag:v1.0 -f json
    """
    arguments = _filter_arguments(ref, include, exclude)
    arguments.update(
        repo=repo,
        max_file_size=max_file_size,
        max_total_size=max_total_size,
    )

    result = _run(ctx, lambda surface: surface.ingest(arguments))
    formatter = JSONSummaryFormatter() if format == "json" else TextDigestFormatter()

    if output:
        formatter.save(result, Path(output))
        summary = result.to_dict()

        click.echo("=" * 60)
        click.echo(f"Repository:     {summary['repository']}")
        click.echo(f"Root:           {summary['root']}")
        click.echo(f"Files included: {summary['files_included']}")
        for status, count in summary["files_skipped"].items():
            if count:
                click.echo(f"  {status}: {count}")
        click.echo(f"Total bytes:    {summary['total_bytes']}")
        click.echo("=" * 60)
        click.echo(f"\nDigest saved to: {output}")
    else:
        click.echo(formatter.format(result))


@cli.command()
@click.argument("repo")
@click.option("--ref", "-r", help="Branch, tag or commit")
@click.option("--include", "-i", multiple=True, help="Glob pattern to include (repeatable)")
@click.option("--exclude", "-e", multiple=True, help="Glob pattern to exclude (repeatable)")
@click.pass_context
def tree(ctx, repo, ref, include, exclude):
    """
    Show the filtered file tree of a repository.

    Nothing but the tree listing is fetched.
    """
    arguments = _filter_arguments(ref, include, exclude)
    arguments["repo"] = repo

    result = _run_tool(ctx, "repository_tree_view", arguments)
    click.echo(result["tree"])
    click.echo(f"\n{result['file_count']} files at {result['root']}")


@cli.command()
@click.argument("repo")
@click.argument("path")
@click.option("--ref", "-r", help="Branch, tag or commit")
@click.pass_context
def read(ctx, repo, path, ref):
    """Print a single file of a repository."""
    result = _run_tool(ctx, "repository_read", {"repo": repo, "path": path, "git_ref": ref})

    if result["binary"]:
        click.echo(f"{result['path']} is a binary file ({result['size']} bytes)", err=True)
        sys.exit(1)
    click.echo(result["content"])


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, help="Maximum results per provider")
@click.pass_context
def search(ctx, query, limit):
    """
    Find GitHub and GitLab repositories matching QUERY.

    Results from both providers are merged, most starred first.
    """
    result = _run_tool(ctx, "find_repositories", {"query": query, "limit": limit})
    click.echo(result["text"])


@cli.command()
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="config.json",
    help="Output path for configuration file"
)
def init(output):
    """
    Initialize configuration file.

    Creates a default configuration file that can be customized.
    Tokens are never written; set GITHUB_TOKEN and GITLAB_TOKEN instead.
    """
    Config.save_to_file(output)
    click.echo(f"Configuration saved to: {output}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
