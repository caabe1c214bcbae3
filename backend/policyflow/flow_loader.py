import json
import os
from typing import Dict, Optional

import yaml

from .models import FlowDocument

FLOW_EXTENSIONS = (".json", ".yaml", ".yml")


class FlowLoader:
    def __init__(self, flows_dir: str):
        self.flows_dir = flows_dir
        self.flows: Dict[str, FlowDocument] = {}
        self.sources: Dict[str, str] = {}

    def load_all(self) -> Dict[str, FlowDocument]:
        # Reset state to allow for reloads
        self.flows = {}
        self.sources = {}

        for root, _, files in os.walk(self.flows_dir):
            for file in sorted(files):
                if file.endswith(FLOW_EXTENSIONS):
                    self._load_flow(os.path.join(root, file))
        return self.flows

    def _load_flow(self, flow_path: str):
        with open(flow_path, "r", encoding="utf-8") as f:
            if flow_path.endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        if not data:
            return

        flow = FlowDocument.model_validate(data)
        flow_id = flow.id or os.path.splitext(os.path.basename(flow_path))[0]
        if flow_id in self.flows:
            raise ValueError(f"Duplicate flow ID: {flow_id} ({flow_path})")
        self._validate_references(flow, flow_id)
        self.flows[flow_id] = flow
        self.sources[flow_id] = flow_path

    def _validate_references(self, flow: FlowDocument, flow_id: str):
        node_ids = set()
        for node in flow.nodes:
            if node.id in node_ids:
                raise ValueError(f"Duplicate node ID in flow {flow_id}: {node.id}")
            node_ids.add(node.id)
        for edge in flow.edges:
            if edge.source not in node_ids:
                raise ValueError(f"Edge source not found in flow {flow_id}: {edge.source}")
            if edge.target not in node_ids:
                raise ValueError(f"Edge target not found in flow {flow_id}: {edge.target}")

    def get_flow(self, identifier: str) -> Optional[FlowDocument]:
        if identifier in self.flows:
            return self.flows[identifier]
        lowered = identifier.lower()
        for flow in self.flows.values():
            if flow.name.lower() == lowered:
                return flow
        return None
