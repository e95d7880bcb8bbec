import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from ev_core import (
    CatalogResult,
    ConfigurationError,
    EnrichmentConfig,
    SqlServerGateway,
    build_snapshot,
    config_issues,
    dump_catalog,
    execute_views,
    generate_views,
    get_connector,
    list_connectors,
    load_catalog,
    preview_text,
)
from ev_core.config import STARTER_CONFIG
from ev_core.issues import Issue, has_errors, issues_as_json, to_lines
from ev_core.loader import load_yaml_file

DEFAULT_CONFIG_NAME = "enrich.config.yaml"
DEFAULT_CONNECTOR = "synapse"


def _configure_logging(verbosity: int) -> None:
    if not verbosity:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbosity > 1 else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_issues(issues: List[Issue]) -> None:
    if not issues:
        print("No issues found.")
        return
    for line in to_lines(issues):
        print(line)


def _print_issue_block(prefix: str, issues: List[Issue], stream: Any = None) -> None:
    stream = stream or sys.stdout
    if not issues:
        return
    print(f"{prefix}:", file=stream)
    for line in to_lines(issues):
        print(f"  {line}", file=stream)


def _load_config(args: argparse.Namespace) -> EnrichmentConfig:
    data = load_yaml_file(args.config, label="Config")
    overrides: Dict[str, Any] = {}
    if getattr(args, "preview", None) is not None:
        overrides["preview_only"] = args.preview
    if getattr(args, "language_code", None) is not None:
        overrides["language_code"] = args.language_code
    if getattr(args, "base_table_suffix", None) is not None:
        overrides["base_table_suffix"] = args.base_table_suffix
    data.update(overrides)
    return EnrichmentConfig.from_dict(data)


def _pull_catalog(args: argparse.Namespace, config: EnrichmentConfig) -> Optional[CatalogResult]:
    connector = get_connector(args.connector)
    if connector is None:
        print(f"Unknown connector: {args.connector}", file=sys.stderr)
        print(f"Available: {', '.join(c['type'] for c in list_connectors())}", file=sys.stderr)
        return None

    ok, msg = connector.check_driver()
    if not ok:
        print(f"Driver check failed: {msg}", file=sys.stderr)
        return None

    print(f"Reading metadata from {connector.display_name}...", file=sys.stderr)
    return connector.pull_catalog(
        config.connector_config(),
        language_code=config.language_code,
        base_table_suffix=config.base_table_suffix,
    )


def _write_report(path: str, payload: Dict[str, Any]) -> None:
    Path(path).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def cmd_init(args: argparse.Namespace) -> int:
    root = Path(args.path)
    root.mkdir(parents=True, exist_ok=True)
    target = root / DEFAULT_CONFIG_NAME
    if target.exists() and not args.force:
        print(f"Config already exists: {target} (use --force to overwrite)", file=sys.stderr)
        return 1
    target.write_text(STARTER_CONFIG, encoding="utf-8")
    print(f"Wrote starter config: {target}")
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        data = load_yaml_file(args.config, label="Config")
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    issues = config_issues(data)
    if getattr(args, "output_json", False):
        print(json.dumps(issues_as_json(issues), indent=2))
    else:
        _print_issues(issues)
    return 1 if has_errors(issues) else 0


def cmd_generate(args: argparse.Namespace) -> int:
    started_ts = time.time()
    try:
        config = _load_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.catalog:
        try:
            catalog = load_catalog(args.catalog)
        except (FileNotFoundError, ValueError) as e:
            print(f"Catalog error: {e}", file=sys.stderr)
            return 1
    else:
        catalog = _pull_catalog(args, config)
        if catalog is None:
            return 1
    for warning in catalog.warnings:
        print(f"  [WARN] {warning}", file=sys.stderr)

    snapshot = build_snapshot(catalog, config)
    result = generate_views(snapshot, config)
    _print_issue_block("Generation checks", result.issues, stream=sys.stderr)

    if config.preview_only:
        text = preview_text(result, config.enriched_view_database)
        if args.out:
            Path(args.out).write_text(text, encoding="utf-8")
            print(f"Wrote preview script: {args.out}")
        else:
            print(text)
        return 0

    if not result.definitions and not result.failed_entities:
        print("No qualifying entities found. No views were created.")
        if args.report_json:
            _write_report(args.report_json, {"status": "success", "view_count": 0, "failed_count": 0, "outcomes": []})
        return 0

    connector = get_connector(args.connector)
    if connector is None:
        print(f"Unknown connector: {args.connector}", file=sys.stderr)
        return 1

    gateway = SqlServerGateway(connector, config.connector_config(), config.enriched_view_database)
    print("Beginning view creation")
    try:
        report = execute_views(result, gateway)
    finally:
        gateway.close()
    print("Completed view creation")

    payload = report.to_dict()
    payload["duration_ms"] = int((time.time() - started_ts) * 1000)
    skipped = {f"/entities/{name}" for name in result.failed_entities}
    execution_issues = [issue for issue in report.issues() if issue.path not in skipped]
    payload["issues"] = issues_as_json(result.issues + execution_issues)
    if args.report_json:
        _write_report(args.report_json, payload)
    if getattr(args, "output_json", False):
        print(json.dumps(payload, indent=2))
    else:
        print(report.summary())

    return 0 if report.success else 1


def cmd_pull(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    catalog = _pull_catalog(args, config)
    if catalog is None:
        return 1

    print(f"\n{catalog.summary()}")
    if args.out:
        dump_catalog(catalog, args.out)
        print(f"\nWrote catalog: {args.out}")
    else:
        print("\n" + json.dumps(catalog.to_dict(), indent=2))
    return 0


def cmd_connectors(args: argparse.Namespace) -> int:
    connectors = list_connectors()
    if getattr(args, "output_json", False):
        print(json.dumps(connectors, indent=2))
    else:
        print("Available metadata connectors:\n")
        for c in connectors:
            status = "installed" if c["installed"] else "NOT INSTALLED"
            print(f"  {c['type']:12s}  {c['name']:30s}  driver: {c['driver']:10s}  [{status}]")
    return 0


def cmd_test_connection(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    connector = get_connector(args.connector)
    if connector is None:
        print(f"Unknown connector: {args.connector}", file=sys.stderr)
        return 1
    ok, msg = connector.test_connection(config.connector_config())
    print(f"{'OK' if ok else 'FAIL'}: {msg}")
    return 0 if ok else 1


def _add_connector_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--connector",
        default=DEFAULT_CONNECTOR,
        choices=["sqlserver", "azure_sql", "synapse"],
        help="Metadata source / execution target type",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ev",
        description="Generate views that replace Dataverse choice codes with localized labels",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress to stderr (-vv for debug)")
    sub = parser.add_subparsers(dest="command", required=True)

    init_parser = sub.add_parser("init", help="Write a starter configuration file")
    init_parser.add_argument("--path", default=".", help="Directory for the config file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")
    init_parser.set_defaults(func=cmd_init)

    validate_parser = sub.add_parser("validate-config", help="Validate a configuration file")
    validate_parser.add_argument("config", help="Path to config YAML")
    validate_parser.add_argument("--output-json", action="store_true", help="Print issues as JSON")
    validate_parser.set_defaults(func=cmd_validate_config)

    generate_parser = sub.add_parser("generate", help="Generate (and optionally create) enriched views")
    generate_parser.add_argument("config", help="Path to config YAML")
    generate_parser.add_argument("--catalog", help="Read metadata from a catalog YAML/JSON file instead of the database")
    mode = generate_parser.add_mutually_exclusive_group()
    mode.add_argument("--preview", dest="preview", action="store_true", default=None, help="Only print the script")
    mode.add_argument("--execute", dest="preview", action="store_false", default=None, help="Create the views")
    generate_parser.add_argument("--language-code", type=int, help="Override language_code")
    generate_parser.add_argument("--base-table-suffix", help="Override base_table_suffix")
    generate_parser.add_argument("--out", help="Write the preview script to a file")
    generate_parser.add_argument("--report-json", help="Write the execution report JSON to a file")
    generate_parser.add_argument("--output-json", action="store_true", help="Print the execution report as JSON")
    _add_connector_argument(generate_parser)
    generate_parser.set_defaults(func=cmd_generate)

    pull_parser = sub.add_parser("pull", help="Dump the live metadata catalog to a file")
    pull_parser.add_argument("config", help="Path to config YAML")
    pull_parser.add_argument("--out", help="Output catalog YAML path")
    pull_parser.add_argument("--language-code", type=int, help="Override language_code")
    pull_parser.add_argument("--base-table-suffix", help="Override base_table_suffix")
    _add_connector_argument(pull_parser)
    pull_parser.set_defaults(func=cmd_pull)

    connectors_parser = sub.add_parser("connectors", help="List metadata connectors")
    connectors_parser.add_argument("--output-json", action="store_true", help="Print as JSON")
    connectors_parser.set_defaults(func=cmd_connectors)

    test_parser = sub.add_parser("test-connection", help="Check that the configured database is reachable")
    test_parser.add_argument("config", help="Path to config YAML")
    _add_connector_argument(test_parser)
    test_parser.set_defaults(func=cmd_test_connection)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
