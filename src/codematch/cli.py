# Load .env BEFORE any other imports that might need environment variables
from dotenv import load_dotenv
load_dotenv()

import argparse
import copy
import json
import logging
import sys
from pathlib import Path

from codematch.config import Config, find_repo_root, DEFAULT_CONFIG
from codematch.extraction.factory import MatchingService
from codematch.server.tools import Toolkit

RULE = "━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━"


def _require_config() -> Config:
    """Config for the current repo, exiting when it has not been initialized."""
    repo_root = find_repo_root()
    config = Config(repo_root)
    if not config.exists():
        print(f"❌ codematch is not initialized in this repository.")
        print(f"   Run 'codematch init' to get started.")
        sys.exit(1)
    return config


def _load_service(config: Config, use_embeddings: bool = False) -> MatchingService:
    service = MatchingService(config, use_embeddings=use_embeddings)
    if not service.refresh():
        service.close()
        print(f"❌ Could not load entities from Neo4j.")
        print(f"   Make sure Neo4j is running and the code graph has been ingested.")
        sys.exit(1)
    return service


def cmd_init(args):
    """Initialize codematch in the current repository."""
    repo_root = Path.cwd()

    config = Config(repo_root)
    if config.exists():
        print(f"⚠️  This repository is already initialized with codematch.")
        print(f"    Config location: {config.config_file}")
        print(f"\n   To reconfigure, edit the config file or delete .codematch/ and run init again.")
        return

    print(f"🚀 Initializing codematch in: {repo_root}\n")
    new_config = copy.deepcopy(DEFAULT_CONFIG)

    if not args.defaults:
        print(RULE)
        print("Neo4j Database Configuration")
        print(RULE + "\n")
        neo4j_config = new_config["neo4j"]
        neo4j_config["uri"] = input(f"   Neo4j URI (default: {neo4j_config['uri']}): ").strip() or neo4j_config["uri"]
        neo4j_config["user"] = input(f"   Neo4j username (default: {neo4j_config['user']}): ").strip() or neo4j_config["user"]
        neo4j_config["password"] = input("   Neo4j password (default: password): ").strip() or neo4j_config["password"]

        print("\nOpenAI embeddings power the semantic agent's similarity search.")
        print("Leave empty to use the OPENAI_API_KEY environment variable.")
        new_config["openai"]["api_key"] = input("   OpenAI API key (sk-...): ").strip()

    config.save(new_config)
    print(f"\n✅ Configuration saved to {config.config_file}")
    print(f"   Next: 'codematch refresh' to load entities, then 'codematch extract \"<query>\"'.")


def cmd_status(args):
    """Show configuration and registry statistics."""
    repo_root = find_repo_root()
    config = Config(repo_root)

    if not config.exists():
        print(f"❌ codematch is not initialized in this repository.")
        print(f"   Run 'codematch init' to get started.")
        return

    print(f"📊 codematch Status")
    print(RULE)
    print(f"Repository: {repo_root}")
    print(f"Config:     {config.config_file}")

    agents = config.get_agents_config()
    enabled = [name for name, section in agents.items() if section.get("enabled", True)]
    print(f"Agents:     {', '.join(enabled) or 'none'}")
    print(f"Embeddings: {'enabled' if config.get_openai_key() else 'disabled (no OpenAI key)'}")

    service = MatchingService(config, use_embeddings=False)
    try:
        if not service.refresh():
            print(f"\n⚠️  Could not load entities from Neo4j.")
            print(f"   Make sure Neo4j is running and check your config.")
            return
        stats = service.registry.stats()
        print(f"\n📈 Registry Statistics:")
        print(f"   Classes:  {stats['classes']:,}")
        print(f"   Methods:  {stats['methods']:,}")
        print(f"   Packages: {stats['packages']:,}")
        if stats["skipped_records"]:
            print(f"   Skipped:  {stats['skipped_records']:,}")
    finally:
        service.close()


def cmd_refresh(args):
    """Load the registry from Neo4j and report what was loaded."""
    config = _require_config()
    service = _load_service(config, use_embeddings=args.embeddings)
    try:
        stats = service.stats()
        print(f"✅ Registry loaded")
        print(f"   Classes:        {stats['classes']:,}")
        print(f"   Methods:        {stats['methods']:,}")
        print(f"   Packages:       {stats['packages']:,}")
        print(f"   Skipped:        {stats['skipped_records']:,}")
        print(f"   Embedded names: {stats['semantic_entities']:,}")
    finally:
        service.close()


def cmd_extract(args):
    """Extract code entities from a natural-language query."""
    config = _require_config()
    service = _load_service(config, use_embeddings=args.embeddings)

    try:
        if args.agents:
            service.toggles.enable_only(*[a.strip() for a in args.agents.split(",") if a.strip()])

        result = service.extract(args.query)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
            return

        if result.status == "error":
            print(f"❌ Extraction failed: {result.error}")
            sys.exit(1)
        if not result.matches:
            print("No code entities found.")
            return

        print(f"\nFound {len(result.matches)} match(es):\n")
        print(Toolkit.format_matches(result.matches[: args.limit]))
        print()
        for label, names in (
            ("Classes", result.classes),
            ("Methods", result.methods),
            ("Packages", result.packages),
            ("Terms", result.terms),
        ):
            if names:
                print(f"{label}: {', '.join(names)}")
    finally:
        service.close()


def cmd_similar(args):
    """Find entity names within a few edits of a term."""
    config = _require_config()
    service = _load_service(config, use_embeddings=False)
    try:
        matches = service.registry.find_similar(args.term, args.distance)
        if not matches:
            print(f"No entities within {args.distance} edits of '{args.term}'.")
            return
        print(Toolkit.format_matches(matches))
    finally:
        service.close()


def cmd_serve(args):
    """Start the MCP server."""
    from codematch.server.app import run_server

    repo_root = find_repo_root()
    config = Config(repo_root)

    if not config.exists():
        print(f"⚠️  No local config found, using environment variables")

    print(f"🧠 Starting MCP Interface on port {args.port}")
    run_server(port=args.port, repo_root=repo_root)


def main():
    parser = argparse.ArgumentParser(
        description="codematch: find the classes and methods a query is talking about",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Quick Start:
  codematch init                     # Initialize in current repo
  codematch refresh                  # Load entities from the code graph

Commands:
  codematch extract "<query>"        # Extract entities from a query
  codematch similar <term>           # Typo-tolerant name lookup
  codematch serve                    # Start MCP server
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Command: init
    init_parser = subparsers.add_parser("init", help="Initialize codematch in current repository")
    init_parser.add_argument(
        "--defaults", action="store_true", help="Write the default config without prompting"
    )

    # Command: status
    subparsers.add_parser("status", help="Show configuration and registry statistics")

    # Command: refresh
    refresh_parser = subparsers.add_parser("refresh", help="Load the entity registry from Neo4j")
    refresh_parser.add_argument(
        "--embeddings", action="store_true", help="Also embed entity names through OpenAI"
    )

    # Command: extract
    extract_parser = subparsers.add_parser("extract", help="Extract code entities from a query")
    extract_parser.add_argument("query", help="Natural language query")
    extract_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    extract_parser.add_argument(
        "--agents", help="Comma-separated agents to run (pattern,fuzzy,semantic)"
    )
    extract_parser.add_argument(
        "--limit", "-l", type=int, default=20, help="Maximum matches to print"
    )
    extract_parser.add_argument(
        "--embeddings", action="store_true", help="Embed the query and entity names through OpenAI"
    )

    # Command: similar
    similar_parser = subparsers.add_parser("similar", help="Find entity names close to a term")
    similar_parser.add_argument("term", help="Possibly misspelled entity name")
    similar_parser.add_argument(
        "--distance", "-d", type=int, default=2, help="Maximum edit distance"
    )

    # Command: serve (MCP server)
    serve_parser = subparsers.add_parser("serve", help="Start the MCP server")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Dispatch to command handlers
    if args.command == "init":
        cmd_init(args)
    elif args.command == "status":
        cmd_status(args)
    elif args.command == "refresh":
        cmd_refresh(args)
    elif args.command == "extract":
        cmd_extract(args)
    elif args.command == "similar":
        cmd_similar(args)
    elif args.command == "serve":
        cmd_serve(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
