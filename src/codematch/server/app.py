"""
MCP Server for codematch.

Exposes entity extraction over the code graph to AI agents via the Model
Context Protocol.
"""

import os
import atexit
import logging
import time
from typing import Optional, Dict
from functools import wraps
from datetime import datetime, timedelta
from pathlib import Path

from mcp.server.fastmcp import FastMCP
from codematch.config import Config, find_repo_root
from codematch.extraction.factory import MatchingService
from codematch.server.tools import Toolkit

logger = logging.getLogger(__name__)

# Initialize the MCP Server
mcp = FastMCP("codematch")

# Global matching service (initialized when server starts)
service: Optional[MatchingService] = None
_repo_override: Optional[Path] = None

# Rate limiting configuration
RATE_LIMIT_REQUESTS = 100  # Max requests per window
RATE_LIMIT_WINDOW = 60     # Window in seconds
_request_log: Dict[str, list] = {}
MAX_EDIT_DISTANCE = 3


def rate_limit(func):
    """Rate limiting decorator for MCP tools."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        key = func.__name__
        now = datetime.now()

        if key not in _request_log:
            _request_log[key] = []

        # Remove requests outside the window
        window_start = now - timedelta(seconds=RATE_LIMIT_WINDOW)
        _request_log[key] = [t for t in _request_log[key] if t > window_start]

        if len(_request_log[key]) >= RATE_LIMIT_REQUESTS:
            logger.warning(f"Rate limit exceeded for {key}")
            return "❌ Rate limit exceeded. Please try again later."

        _request_log[key].append(now)

        return func(*args, **kwargs)
    return wrapper


def log_tool_call(func):
    """Decorator to log tool calls for debugging."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        tool_name = func.__name__

        logger.info(f"🔧 Tool called: {tool_name}")
        logger.debug(f"   Args: {args}, Kwargs: {kwargs}")

        try:
            result = func(*args, **kwargs)
            duration = time.time() - start_time
            logger.info(f"✅ Tool {tool_name} completed in {duration:.2f}s")
            return result
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"❌ Tool {tool_name} failed after {duration:.2f}s: {e}")
            raise
    return wrapper


def _resolve_config() -> Config:
    repo_root_env = os.getenv("CODEMATCH_REPO")
    if _repo_override:
        repo_root = _repo_override.resolve()
    elif repo_root_env:
        repo_root = Path(repo_root_env).expanduser().resolve()
    else:
        repo_root = find_repo_root()
    config = Config(repo_root)
    if config.exists():
        logger.info(f"📂 Using config from: {config.config_file}")
    else:
        logger.info("🔧 No config file found, using defaults and environment variables")
    return config


def init_service() -> MatchingService:
    """Initialize the global matching service and load the registry."""
    global service

    config = _resolve_config()
    service = MatchingService(config)
    if not service.refresh():
        logger.warning("⚠️ Initial registry load failed; serving with an empty registry")
    service.start_periodic_refresh()
    logger.info("✅ Matching service ready")
    return service


def get_service() -> Optional[MatchingService]:
    """Lazily initialize and return the matching service."""
    global service
    if service is not None:
        return service

    try:
        return init_service()
    except Exception as e:
        logger.error(f"❌ Failed to initialize matching service: {e}")
        return None


def _close_service_on_exit():
    """Stop background refresh and close connections on process exit."""
    if service:
        service.close()


atexit.register(_close_service_on_exit)


def validate_tool_output(output: str, max_length: int = 8000) -> str:
    """
    Validate and truncate tool output to ensure LLM-readable format.

    Args:
        output: The raw output string
        max_length: Maximum length for LLM consumption

    Returns:
        Validated and potentially truncated output
    """
    if not output or not isinstance(output, str):
        return "❌ Tool returned invalid output"

    if len(output) > max_length:
        truncated = output[:max_length]
        truncated += f"\n\n... [Output truncated: {len(output) - max_length} chars omitted]"
        return truncated

    return output


@mcp.tool()
@rate_limit
@log_tool_call
def extract_entities(query: str, limit: int = 10) -> str:
    """
    Find the classes, methods and packages a natural-language query refers to.

    Combines exact, pattern, fuzzy (typo-tolerant) and semantic matching
    against the code graph's entity registry.

    Args:
        query: Natural language query (e.g. "where is payment processed?")
        limit: Maximum number of ranked matches to list (default: 10)

    Returns:
        Markdown with bucketed entity names and ranked, scored matches
    """
    current = get_service()
    if not current:
        return "❌ Matching service not initialized. Check Neo4j connection."
    if not query or not query.strip():
        return "❌ Query must not be empty."

    return validate_tool_output(Toolkit(current).extract_entities(query.strip(), max(1, int(limit))))


@mcp.tool()
@rate_limit
@log_tool_call
def find_similar_entities(term: str, max_distance: int = 2) -> str:
    """
    Find entity names within a few character edits of a (possibly misspelled) term.

    Args:
        term: Name to look up (e.g. "PaymentServce")
        max_distance: Maximum Levenshtein distance, 0-3 (default: 2)

    Returns:
        Markdown list of similar entities with confidence scores
    """
    current = get_service()
    if not current:
        return "❌ Matching service not initialized. Check Neo4j connection."
    if not term or not term.strip():
        return "❌ Term must not be empty."

    distance = min(MAX_EDIT_DISTANCE, max(0, int(max_distance)))
    return validate_tool_output(Toolkit(current).find_similar_entities(term.strip(), distance))


@mcp.tool()
@rate_limit
@log_tool_call
def registry_status() -> str:
    """
    Report entity counts, last refresh time and agent configuration.

    Returns:
        Markdown status report
    """
    current = get_service()
    if not current:
        return "❌ Matching service not initialized. Check Neo4j connection."
    return Toolkit(current).registry_status()


@mcp.tool()
@rate_limit
@log_tool_call
def refresh_registry() -> str:
    """
    Reload all entities from the code graph.

    Returns:
        Markdown status report after the refresh
    """
    current = get_service()
    if not current:
        return "❌ Matching service not initialized. Check Neo4j connection."
    return Toolkit(current).refresh_registry()


def run_server(port: int, repo_root: Optional[Path] = None):
    """
    Start the MCP server.

    Args:
        port: Port number to listen on
        repo_root: Optional explicit repository root for config resolution
    """
    global _repo_override
    _repo_override = repo_root.resolve() if repo_root else None
    logger.info(f"🚀 Starting codematch MCP server on port {port}")
    if _repo_override:
        logger.info(f"📂 Repository override set to {_repo_override}")
    if not get_service():
        logger.warning("⚠️ Starting MCP server without an active matching service.")
    mcp.run()
