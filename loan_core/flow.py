from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Sequence

import pandas as pd

from loan_core.data import resolve_field, to_native


class NodeKey(NamedTuple):
    stage: int
    value: object


@dataclass(frozen=True)
class FlowNode:
    id: int
    stage: int
    value: object


@dataclass(frozen=True)
class FlowLink:
    source_id: int
    target_id: int
    weight: int


@dataclass(frozen=True)
class FlowGraph:
    nodes: List[FlowNode] = field(default_factory=list)
    links: List[FlowLink] = field(default_factory=list)


def build_flow_graph(view: pd.DataFrame, stages: Sequence[str]) -> FlowGraph:
    """Sankey-style graph over consecutive categorical stages.

    Nodes are keyed by ``(stage index, value)`` so a label shared by two
    stages yields two nodes. Node ids and link order follow first appearance
    in ``view``, stage pair by stage pair.
    """
    cols = [resolve_field(s) for s in stages]
    if len(cols) < 2 or view.empty:
        return FlowGraph()

    node_ids: Dict[NodeKey, int] = {}
    nodes: List[FlowNode] = []
    links: List[FlowLink] = []

    def node_id(key: NodeKey) -> int:
        if key not in node_ids:
            node_ids[key] = len(nodes)
            nodes.append(FlowNode(id=node_ids[key], stage=key.stage, value=key.value))
        return node_ids[key]

    for stage, (src_col, tgt_col) in enumerate(zip(cols, cols[1:])):
        pairs = pd.DataFrame({"source": view[src_col].to_numpy(), "target": view[tgt_col].to_numpy()})
        weights = pairs.groupby(["source", "target"], sort=False).size()
        for (source, target), weight in weights.items():
            src = node_id(NodeKey(stage, to_native(source)))
            tgt = node_id(NodeKey(stage + 1, to_native(target)))
            links.append(FlowLink(source_id=src, target_id=tgt, weight=int(weight)))

    return FlowGraph(nodes=nodes, links=links)
