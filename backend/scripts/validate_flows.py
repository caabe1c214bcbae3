import argparse
import os
import sys

# Add backend directory to sys.path
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(BACKEND_DIR)

from policyflow import config
from policyflow.flow_loader import FlowLoader
from policyflow.validator import validate_flow


def build_report(flows_dir: str):
    loader = FlowLoader(flows_dir)
    flows = loader.load_all()
    rows = []
    for flow_id, flow in sorted(flows.items()):
        result = validate_flow(flow.nodes, flow.edges)
        rows.append({
            "id": flow_id,
            "name": flow.name,
            "source": os.path.relpath(loader.sources[flow_id], flows_dir),
            "nodes": len(flow.nodes),
            "edges": len(flow.edges),
            "tests": len(flow.tests),
            "valid": result.is_valid,
            "errors": result.errors,
        })
    return rows


def print_report(rows):
    print("# Flow Validation Report\n")
    print("| Flow | Name | Source | Nodes | Edges | Tests | Valid | Errors |")
    print("| :--- | :--- | :--- | ---: | ---: | ---: | :---: | :--- |")
    for row in rows:
        errors = "<br>".join(error.replace("|", "\\|") for error in row["errors"]) or "-"
        valid = "yes" if row["valid"] else "no"
        print(
            f"| {row['id']} | {row['name']} | {row['source']} | {row['nodes']} | "
            f"{row['edges']} | {row['tests']} | {valid} | {errors} |"
        )

    invalid = [row for row in rows if not row["valid"]]
    print(f"\n**Total flows:** {len(rows)}  ")
    print(f"**Invalid flows:** {len(invalid)}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Validate every flow document in a directory.")
    parser.add_argument(
        "flows_dir",
        nargs="?",
        default=config.FLOWS_DIR,
        help="Directory containing .json/.yaml flow documents",
    )
    args = parser.parse_args(argv)

    if not os.path.isdir(args.flows_dir):
        print(f"Flows directory not found: {args.flows_dir}", file=sys.stderr)
        return 2

    rows = build_report(args.flows_dir)
    print_report(rows)
    return 0 if all(row["valid"] for row in rows) else 1


if __name__ == "__main__":
    sys.exit(main())
