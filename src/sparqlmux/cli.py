"""Command line interface for :mod:`sparqlmux`."""

import json
from pathlib import Path
from typing import Optional

import click

from .config import Settings
from .connection import Connection

__all__ = [
    "main",
]


def _connection(ctx: click.Context) -> Connection:
    conn = ctx.obj.get("connection")
    if conn is None:
        conn = Connection.from_settings(ctx.obj["settings"])
        ctx.obj["connection"] = conn
        ctx.call_on_close(conn.close)
    return conn


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML settings file")
@click.option("--endpoint", help="Server root URL (overrides SPARQLMUX_ENDPOINT)")
@click.option("--database", "-d", help="Default database (overrides SPARQLMUX_DATABASE)")
@click.option("--username", "-u", help="Username")
@click.option("--password", "-p", help="Password")
@click.pass_context
def main(
    ctx: click.Context,
    verbose: bool,
    config_path: Optional[str],
    endpoint: Optional[str],
    database: Optional[str],
    username: Optional[str],
    password: Optional[str],
) -> None:
    r"""sparqlmux - cached, retrying access to a graph database.

    Connection settings come from SPARQLMUX_* environment variables, an
    optional YAML file and the options below, in increasing priority.
    """
    import logging

    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )
        logging.getLogger("sparqlmux").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s", force=True)

    if "settings" not in ctx.obj:
        settings = Settings.from_yaml(config_path) if config_path else Settings()
        overrides = {
            "ENDPOINT": endpoint,
            "DATABASE": database,
            "USERNAME": username,
            "PASSWORD": password,
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(settings, key, value)
        ctx.obj["settings"] = settings


@main.command()
@click.argument("query")
@click.option(
    "--reasoning/--no-reasoning",
    default=None,
    help="Override the reasoning mode for this query only",
)
@click.option("--values", is_flag=True, help="Print values only (drop types and datatypes)")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "csv"]),
    default="json",
    help="Output format",
)
@click.option("--no-cache", is_flag=True, help="Bypass the response cache")
@click.pass_context
def query(
    ctx: click.Context,
    query: str,
    reasoning: Optional[bool],
    values: bool,
    output_format: str,
    no_cache: bool,
) -> None:
    """Run a SELECT or ASK query and print the result rows.

    QUERY is the query text, or @path to read it from a file.


    Example:
      sparqlmux -d mydb query "SELECT ?s WHERE { ?s a ?t } LIMIT 5" --values
    """
    options = {"query": _read_query(query)}
    if reasoning is not None:
        options["reasoning"] = reasoning
    if no_cache:
        options["cache"] = False

    try:
        conn = _connection(ctx)
        if output_format == "csv":
            frame = conn.get_results_frame(options)
            click.echo(frame.to_csv(index=False), nl=False)
            return

        body = conn.query(options)
        if isinstance(body, dict) and "boolean" in body:
            click.echo(json.dumps(body["boolean"]))
        elif values:
            from .results import results_values

            click.echo(json.dumps(results_values(body), indent=2))
        else:
            from .results import bindings

            click.echo(json.dumps(bindings(body), indent=2))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()


@main.command()
@click.argument("query")
@click.option(
    "--form",
    type=click.Choice(["compact", "flatten", "expand", "raw"]),
    default=None,
    help="JSON-LD form (default: compact with --context, raw otherwise)",
)
@click.option("--context", "context_file", type=click.Path(exists=True), help="JSON-LD context file")
@click.option("--reasoning/--no-reasoning", default=None, help="Reasoning for this query only")
@click.option("--output", "-o", help="Write the document to this file")
@click.pass_context
def graph(
    ctx: click.Context,
    query: str,
    form: Optional[str],
    context_file: Optional[str],
    reasoning: Optional[bool],
    output: Optional[str],
) -> None:
    """Run a CONSTRUCT or DESCRIBE query and print JSON-LD.


    Example:
      sparqlmux -d mydb graph "CONSTRUCT WHERE { ?s ?p ?o } LIMIT 10" --form flatten
    """
    options = {"query": _read_query(query)}
    if reasoning is not None:
        options["reasoning"] = reasoning

    try:
        context = None
        if context_file:
            with open(context_file, encoding="utf-8") as f:
                context = json.load(f)

        doc = _connection(ctx).get_graph(options, form=form, context=context)
        text = json.dumps(doc, indent=2)
        if output:
            Path(output).write_text(text, encoding="utf-8")
            click.echo(f"OK Graph saved: {output}")
        else:
            click.echo(text)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--graph-uri", help="Named graph to insert into")
@click.option("--rdf-format", help="rdflib parser format (guessed from extension by default)")
@click.pass_context
def insert(
    ctx: click.Context,
    path: str,
    graph_uri: Optional[str],
    rdf_format: Optional[str],
) -> None:
    """Insert the statements of an RDF file with INSERT DATA.

    JSON-LD files (.jsonld / .json) are inserted as-is; other formats are
    parsed with rdflib first.


    Example:
      sparqlmux -d mydb insert people.ttl --graph-uri http://example.org/people
    """
    try:
        source = Path(path)
        if source.suffix in (".jsonld", ".json") and rdf_format is None:
            with open(source, encoding="utf-8") as f:
                data = json.load(f)
        else:
            from rdflib import Graph

            data = Graph()
            data.parse(str(source), format=rdf_format)

        _connection(ctx).insert_graph(data, graph_uri=graph_uri)
        click.echo(f"OK Inserted {source.name}" + (f" into <{graph_uri}>" if graph_uri else ""))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()


def _read_query(query: str) -> str:
    if query.startswith("@"):
        return Path(query[1:]).read_text(encoding="utf-8")
    return query


if __name__ == "__main__":
    main()
