# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP protocol layer for the context engine.

This module only translates MCP tool calls into ContextEngine calls and
formats the results. Engine calls block on file I/O, so each tool runs them
in a worker thread and the event loop stays responsive.
"""

import argparse
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from context_engine.engine import ContextEngine
from context_engine.exceptions import ConfigurationError, FileAccessError
from context_engine.log_config import ensure_log_directories, get_default_data_root
from context_engine.logging_setup import setup_logging

logger = logging.getLogger(__name__)

SERVER_NAME = "context-engine"


class ContextEngineMCPServer:
    """MCP server exposing context collection and cache management tools.

    Tools:
    - collect_context: bounded context collection for a file
    - get_cache_metrics / clear_cache / invalidate_cache: cache management
    - get_config / update_config: configuration snapshot and overrides
    """

    def __init__(
        self,
        project_root: Optional[str] = None,
        engine: Optional[ContextEngine] = None,
        data_root: Optional[Path] = None,
        session_id: Optional[str] = None,
    ) -> None:
        """Initialize MCP server.

        Args:
            project_root: Workspace root for a default engine (default: cwd).
            engine: Engine instance. If None, creates one for project_root.
            data_root: Root directory for log files. If None, uses ~/.context_engine/
            session_id: Session ID for log filenames. If None, generates a UUID.
        """
        self.data_root = data_root or get_default_data_root()
        self.session_id = session_id or str(uuid.uuid4())

        if engine is None:
            ensure_log_directories(self.data_root)
            engine = ContextEngine(
                project_root=project_root,
                session_id=self.session_id,
                data_root=self.data_root,
            )
        self.engine = engine

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("ContextEngineMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server."""

        @self.mcp.tool()
        async def collect_context(
            file_path: str,
            ctx: Context[ServerSession, None],
            selected_text: Optional[str] = None,
            cursor_line: Optional[int] = None,
            as_prompt: bool = False,
        ) -> Dict[str, Any]:
            """Collect the files most relevant to a source file, within size budgets.

            The current file is always first, followed by its imports and
            nearby files ranked by relevance.

            Args:
                file_path: Absolute or project-relative path of the current file
                ctx: MCP context for logging
                selected_text: Optional editor selection used to boost relevance
                cursor_line: Optional 1-based cursor line
                as_prompt: Also return the files rendered as fenced code blocks

            Returns:
                Dictionary with files, total_lines, estimated_tokens, summary,
                truncated and (if requested) prompt_text.
            """
            await ctx.info(f"Collecting context for {file_path}")

            try:
                collection = await asyncio.to_thread(
                    self.engine.collect_context, file_path, selected_text, cursor_line
                )
            except FileNotFoundError:
                await ctx.error(f"File not found: {file_path}")
                raise
            except FileAccessError as e:
                await ctx.error(str(e))
                raise

            response = collection.to_dict()
            if as_prompt:
                response["prompt_text"] = collection.to_prompt_text()

            await ctx.info(collection.summary)
            return response

        @self.mcp.tool()
        async def get_cache_metrics() -> Dict[str, Any]:
            """Get summary cache hits, misses, evictions, entries, size and hit rate."""
            metrics = await asyncio.to_thread(self.engine.get_cache_metrics)
            return metrics.to_dict()

        @self.mcp.tool()
        async def clear_cache(ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Remove every cached summary. Cumulative counters are kept."""
            await asyncio.to_thread(self.engine.clear_cache)
            await ctx.info("Cache cleared")
            metrics = await asyncio.to_thread(self.engine.get_cache_metrics)
            return {"cleared": True, "metrics": metrics.to_dict()}

        @self.mcp.tool()
        async def invalidate_cache(file_path: str) -> Dict[str, Any]:
            """Drop the cached summary for one file.

            Args:
                file_path: Absolute or project-relative path

            Returns:
                Dictionary with file_path and whether an entry was removed.
            """
            removed = await asyncio.to_thread(self.engine.invalidate_cache, file_path)
            return {"file_path": file_path, "invalidated": removed}

        @self.mcp.tool()
        async def get_config() -> Dict[str, Any]:
            """Get the current engine configuration."""
            return self.engine.get_config().to_dict()

        @self.mcp.tool()
        async def update_config(
            overrides: Dict[str, Any],
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Override configuration values; takes effect on the next collection.

            Args:
                overrides: Partial configuration, e.g. {"max_files": 3}
                ctx: MCP context for logging

            Returns:
                The full configuration after the update.
            """
            try:
                updated = await asyncio.to_thread(self.engine.update_config, overrides)
            except ConfigurationError as e:
                await ctx.error(f"Invalid configuration: {e}")
                raise
            return updated.to_dict()

        logger.info(
            "MCP tools registered: collect_context, get_cache_metrics, clear_cache, "
            "invalidate_cache, get_config, update_config"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: "stdio" (default), "streamable-http" or "sse".
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.engine.cleanup()


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Context Engine MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--project-root",
        type=str,
        default=None,
        help="Workspace root to collect context from. Default: current directory",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for log files. Default: {get_default_data_root()}",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Watch the project and invalidate cached summaries of changed files",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level. Default: INFO",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the MCP server."""
    args = parse_args(argv)

    # Console output goes to stderr; stdout belongs to the stdio transport
    setup_logging(data_root=args.data_root, log_level=getattr(logging, args.log_level))

    server = ContextEngineMCPServer(project_root=args.project_root, data_root=args.data_root)
    logger.info(
        f"Starting MCP server with project_root={server.engine.project_root}, "
        f"session_id={server.session_id}"
    )
    if args.watch:
        server.engine.start_file_watcher()

    try:
        server.run(transport=args.transport)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
