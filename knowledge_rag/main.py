"""CLI entry point."""

from __future__ import annotations

# Set certifi CA bundle for SSL before any HTTP libs load (fixes macOS/python.org cert issues)
import os

import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())

import argparse
import asyncio
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from knowledge_rag.config import load_settings, validate_secret_env
from knowledge_rag.exceptions import ConfigurationError, KnowledgeRAGError
from knowledge_rag.models import Document, SettingsConfig, SourcePool
from knowledge_rag.services import KnowledgeServices, open_services
from knowledge_rag.utils.logging_config import LogLevel, setup_logging
from knowledge_rag.utils.structured_log import bind_owner, configure_audit_logging

DEFAULT_BASE_PROMPT = "You are a helpful assistant."


def _load_settings(path: str) -> SettingsConfig:
    if not Path(path).exists():
        return SettingsConfig()
    try:
        return load_settings(path)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings in {path}: {exc}") from exc


def _configure_logging(settings: SettingsConfig, verbose: bool, debug: bool) -> None:
    setup_logging(
        level=LogLevel(settings.logging.level),
        log_to_file=settings.logging.log_to_file,
        log_file=settings.logging.log_file,
        verbose=verbose,
        debug=debug,
    )
    if settings.logging.audit_log_dir:
        configure_audit_logging(settings.logging.audit_log_dir)


async def _cmd_add(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    path = Path(args.file)
    content = path.read_text(encoding="utf-8")
    document = Document(
        owner_id=args.owner,
        title=args.title or path.stem,
        filename=path.name,
        file_type=path.suffix.lstrip(".") or "txt",
        content=content,
        tags=args.tag or [],
    )
    await services.documents.create(document)
    result = await services.indexer.index_document(
        document.id, content, generate_embeddings=not args.no_embeddings
    )
    console.print(
        f"[green]Added[/] {escape(document.title)} ({document.id}): "
        f"{result.chunk_count} chunks, {result.total_tokens} tokens"
    )
    return 0


async def _cmd_index(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    try:
        result = await services.indexer.reindex_document(args.document_id)
    except LookupError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return 1
    console.print(f"[green]Reindexed[/] {result.document_id}: {result.chunk_count} chunks")
    return 0


async def _cmd_search(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    if args.keyword:
        results = await services.indexer.keyword_search(args.query, limit=args.limit)
    else:
        results = await services.indexer.semantic_search(
            args.query, limit=args.limit, min_score=args.min_score
        )
    table = Table(title=f"Results for '{args.query}'")
    table.add_column("Score", style="cyan", no_wrap=True)
    table.add_column("Document", style="white")
    table.add_column("Chunk", style="dim")
    table.add_column("Content", style="white")
    for chunk in results:
        table.add_row(
            f"{chunk.relevance_score:.3f}",
            chunk.document_id or "",
            str(chunk.chunk_index),
            escape(chunk.content[:80]),
        )
    console.print(table)
    return 0


async def _cmd_ask(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    rag = services.rag
    if args.max_tokens:
        rag.set_max_context_tokens(args.max_tokens)
    if args.multi_source:
        bind_owner(args.owner)
        context = await rag.retrieve_context_multi_source(
            args.query, args.owner, sources=args.source or list(SourcePool)
        )
        enriched = await rag.build_enriched_prompt_multi_source(
            args.query, args.base_prompt, context, args.owner
        )
    else:
        context = await rag.retrieve_context(args.query)
        enriched = await rag.build_enriched_prompt(args.query, args.base_prompt, context)

    console.print(enriched.prompt, markup=False, highlight=False)
    console.print(
        f"[dim]context:[/] {len(enriched.sources)} sources, {enriched.context_tokens} tokens"
    )
    if args.session and enriched.has_context:
        citations = await rag.track_citations(args.session, args.message, enriched.sources)
        console.print(f"[green]Tracked[/] {len(citations)} citations in session {args.session}")
    return 0


async def _cmd_citations(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    if args.session:
        rows = await services.rag.get_session_citations(args.session)
        table = Table(title=f"Citations for session {args.session}")
        table.add_column("Document", style="cyan")
        table.add_column("Relevance", style="white", no_wrap=True)
        table.add_column("Context", style="dim")
        for c in rows:
            table.add_row(
                escape(c.document_title or c.document_id),
                f"{c.relevance_score:.2f}",
                escape(c.context_used[:60]),
            )
        console.print(table)
        return 0

    top = await services.rag.get_top_cited_documents(args.owner, limit=args.limit)
    table = Table(title="Most cited documents")
    table.add_column("Document", style="cyan")
    table.add_column("Citations", style="white", no_wrap=True)
    table.add_column("Avg relevance", style="white", no_wrap=True)
    for d in top:
        table.add_row(escape(d.title), str(d.citation_count), f"{d.avg_relevance:.2f}")
    console.print(table)
    return 0


async def _cmd_stats(services: KnowledgeServices, args: argparse.Namespace, console: Console) -> int:
    doc_stats = await services.documents.get_stats(args.owner)
    kg_stats = await services.rag.knowledge_graph.safe_stats(args.owner)
    table = Table(title=f"Knowledge base for {args.owner}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in doc_stats.items():
        table.add_row(key, str(value))
    table.add_row("embedding_provider", services.provider.name())
    if kg_stats is not None:
        table.add_row("entities", str(kg_stats.total_entities))
        table.add_row("top_projects", ", ".join(p.name for p in kg_stats.top_projects))
        table.add_row("top_people", ", ".join(p.name for p in kg_stats.top_people))
    console.print(table)
    return 0


_COMMANDS = {
    "add": _cmd_add,
    "index": _cmd_index,
    "search": _cmd_search,
    "ask": _cmd_ask,
    "citations": _cmd_citations,
    "stats": _cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="knowledge-rag")
    parser.add_argument("--settings", default="config/settings.yaml")
    parser.add_argument("--db", help="SQLite path; overrides database.path from settings")
    parser.add_argument("--verbose", "-v", action="store_true")
    parser.add_argument("--debug", "-d", action="store_true")
    sub = parser.add_subparsers(dest="command")

    add = sub.add_parser("add", help="Store a text file as a document and index it")
    add.add_argument("file")
    add.add_argument("--owner", required=True)
    add.add_argument("--title")
    add.add_argument("--tag", action="append")
    add.add_argument("--no-embeddings", action="store_true", help="Chunk only; skip embedding calls")

    index = sub.add_parser("index", help="Reindex a stored document")
    index.add_argument("document_id")

    search = sub.add_parser("search", help="Search indexed chunks")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=5)
    search.add_argument("--min-score", type=float, default=0.7)
    search.add_argument("--keyword", action="store_true", help="Substring match instead of vectors")

    ask = sub.add_parser("ask", help="Build an enriched prompt for a question")
    ask.add_argument("query")
    ask.add_argument("--owner", default="default")
    ask.add_argument("--base-prompt", default=DEFAULT_BASE_PROMPT)
    ask.add_argument("--multi-source", action="store_true")
    ask.add_argument("--source", action="append", choices=[p.value for p in SourcePool])
    ask.add_argument("--max-tokens", type=int)
    ask.add_argument("--session", help="Record citations for the sources used in this session")
    ask.add_argument("--message")

    citations = sub.add_parser("citations", help="Show citations by session or most cited documents")
    citations.add_argument("--session")
    citations.add_argument("--owner", default="default")
    citations.add_argument("--limit", type=int, default=10)

    stats = sub.add_parser("stats", help="Document and knowledge graph statistics")
    stats.add_argument("--owner", default="default")

    return parser


async def _dispatch(args: argparse.Namespace, settings: SettingsConfig, console: Console) -> int:
    async with open_services(settings, db_path=args.db) as services:
        return await _COMMANDS[args.command](services, args, console)


def main(argv: Sequence[str] | None = None) -> int:
    console = Console()
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    try:
        settings = _load_settings(args.settings)
        _configure_logging(settings, args.verbose, args.debug)
    except (ConfigurationError, ValueError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return 1
    for key in validate_secret_env(settings):
        console.print(f"[yellow]Warning:[/] {key} is not set; using deterministic embeddings")

    try:
        return asyncio.run(_dispatch(args, settings, console))
    except (FileNotFoundError, ValueError, KnowledgeRAGError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
