"""Layered (hierarchical) placement of a layout graph.

A placer takes a ``networkx.DiGraph`` whose nodes carry ``width`` and
``height`` attributes and returns the centre ``(x, y)`` of every node, with
edges pointing from one rank to the next in the requested direction.

Two placers are provided:

- ``LayeredPlacer``: a Sugiyama-style layout written against networkx
  (cycle breaking, longest-path ranking, dummy nodes for long edges,
  barycentre crossing reduction, isotonic coordinate assignment).
- ``DotPlacer``: Graphviz ``dot`` through pydot, which ranks with network
  simplex. Needs the Graphviz binaries on PATH.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Protocol

import networkx as nx
import pydot

logger = logging.getLogger("kintree.placement")

POINTS_PER_INCH = 72.0


class Direction(str, Enum):
    TOP_TO_BOTTOM = "TB"
    LEFT_TO_RIGHT = "LR"


@dataclass(frozen=True)
class LayoutOptions:
    node_width: float = 220
    node_height: float = 100
    rank_sep: float = 80
    node_sep: float = 40

    @property
    def couple_width(self) -> float:
        return 2 * self.node_width


Position = tuple[float, float]


class Placer(Protocol):
    def place(
        self, graph: nx.DiGraph, direction: Direction, options: LayoutOptions
    ) -> dict[Hashable, Position]:
        ...


# ============================================================================
# Pure networkx placer
# ============================================================================


@dataclass(frozen=True)
class _Dummy:
    """Virtual node on a long edge; never part of the result."""

    source: Hashable
    target: Hashable
    step: int


def _acyclic(graph: nx.DiGraph) -> nx.DiGraph:
    """Copy of ``graph`` with DFS back edges reversed and self loops dropped."""
    dag = nx.DiGraph()
    dag.add_nodes_from(graph.nodes(data=True))

    on_stack, done = 1, 2
    state: dict[Hashable, int] = {}
    for root in graph.nodes:
        if root in state:
            continue
        state[root] = on_stack
        stack = [(root, iter(list(graph.successors(root))))]
        while stack:
            node, successors = stack[-1]
            for child in successors:
                if child == node:
                    continue
                seen = state.get(child)
                if seen is None:
                    dag.add_edge(node, child)
                    state[child] = on_stack
                    stack.append((child, iter(list(graph.successors(child)))))
                    break
                if seen == on_stack:
                    logger.debug("Reversing back edge %s -> %s", node, child)
                    dag.add_edge(child, node)
                else:
                    dag.add_edge(node, child)
            else:
                state[node] = done
                stack.pop()
    return dag


def _assign_ranks(dag: nx.DiGraph, order: dict[Hashable, int]) -> dict[Hashable, int]:
    """Longest-path ranks, with sources pulled down next to their first successor."""
    topo = list(nx.lexicographical_topological_sort(dag, key=order.__getitem__))
    rank: dict[Hashable, int] = {}
    for node in topo:
        rank[node] = max((rank[p] + 1 for p in dag.predecessors(node)), default=0)

    # Longest path leaves e.g. a childless ancestor line hanging at rank 0;
    # a source only needs to sit one rank above its nearest successor.
    for node in reversed(topo):
        if dag.in_degree(node) == 0 and dag.out_degree(node) > 0:
            rank[node] = min(rank[s] for s in dag.successors(node)) - 1

    lowest = min(rank.values(), default=0)
    return {node: r - lowest for node, r in rank.items()}


def _split_long_edges(dag: nx.DiGraph, rank: dict[Hashable, int]) -> nx.DiGraph:
    """Graph where every edge spans exactly one rank."""
    layered = nx.DiGraph()
    layered.add_nodes_from(dag.nodes(data=True))
    for u, v in dag.edges:
        span = rank[v] - rank[u]
        previous = u
        for step in range(1, span):
            dummy = _Dummy(u, v, step)
            rank[dummy] = rank[u] + step
            layered.add_node(dummy, width=0.0, height=0.0)
            layered.add_edge(previous, dummy)
            previous = dummy
        layered.add_edge(previous, v)
    return layered


def _initial_layers(
    layered: nx.DiGraph, rank: dict[Hashable, int], order: dict[Hashable, int]
) -> list[list[Hashable]]:
    """Layers filled in depth-first order from the sources."""
    layers: list[list[Hashable]] = [[] for _ in range(max(rank.values()) + 1)]
    seen: set = set()
    sources = [n for n in layered.nodes if layered.in_degree(n) == 0]
    sources.sort(key=lambda n: order.get(n, len(order)))
    for source in sources + list(layered.nodes):
        if source in seen:
            continue
        stack = [source]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            layers[rank[node]].append(node)
            stack.extend(reversed(list(layered.successors(node))))
    return layers


def _crossings(layered: nx.DiGraph, upper: list, lower: list) -> int:
    pos = {n: i for i, n in enumerate(lower)}
    segments = [
        (i, pos[v]) for i, u in enumerate(upper) for v in layered.successors(u) if v in pos
    ]
    count = 0
    for a in range(len(segments)):
        for b in range(a + 1, len(segments)):
            (u1, v1), (u2, v2) = segments[a], segments[b]
            if (u1 - u2) * (v1 - v2) < 0:
                count += 1
    return count


def _total_crossings(layered: nx.DiGraph, layers: list[list]) -> int:
    return sum(_crossings(layered, layers[r], layers[r + 1]) for r in range(len(layers) - 1))


def _barycentre_sweep(layered: nx.DiGraph, layers: list[list], downward: bool) -> list[list]:
    layers = [list(layer) for layer in layers]
    indices = range(1, len(layers)) if downward else range(len(layers) - 2, -1, -1)
    for r in indices:
        fixed = layers[r - 1] if downward else layers[r + 1]
        fixed_pos = {n: i for i, n in enumerate(fixed)}
        neighbours = layered.predecessors if downward else layered.successors

        def barycentre(item: tuple[int, Hashable]) -> float:
            i, node = item
            positions = [fixed_pos[n] for n in neighbours(node) if n in fixed_pos]
            return sum(positions) / len(positions) if positions else float(i)

        layers[r] = [node for _, node in sorted(enumerate(layers[r]), key=barycentre)]
    return layers


def _reduce_crossings(layered: nx.DiGraph, layers: list[list], sweeps: int) -> list[list]:
    best, best_count = layers, _total_crossings(layered, layers)
    current = layers
    for i in range(sweeps):
        current = _barycentre_sweep(layered, current, downward=i % 2 == 0)
        count = _total_crossings(layered, current)
        if count < best_count:
            best, best_count = current, count
    return best


def _pack(desired: list[float], gaps: list[float]) -> list[float]:
    """
    Closest positions to ``desired`` (least squares) keeping the order and
    at least ``gaps[i]`` between item ``i - 1`` and item ``i``.
    """
    offsets = []
    total = 0.0
    for i, gap in enumerate(gaps):
        total += gap if i else 0.0
        offsets.append(total)

    # Pool adjacent violators on the shifted targets.
    blocks: list[list[float]] = []
    for d, off in zip(desired, offsets):
        blocks.append([d - off, 1])
        while len(blocks) > 1 and blocks[-2][0] / blocks[-2][1] > blocks[-1][0] / blocks[-1][1]:
            s, c = blocks.pop()
            blocks[-1][0] += s
            blocks[-1][1] += c
    fitted: list[float] = []
    for s, c in blocks:
        fitted.extend([s / c] * int(c))
    return [y + off for y, off in zip(fitted, offsets)]


class LayeredPlacer:
    """Sugiyama-style layered placement on top of networkx."""

    def __init__(self, sweeps: int = 8, passes: int = 8):
        self.sweeps = sweeps
        self.passes = passes

    def place(
        self, graph: nx.DiGraph, direction: Direction, options: LayoutOptions
    ) -> dict[Hashable, Position]:
        if graph.number_of_nodes() == 0:
            return {}

        order = {n: i for i, n in enumerate(graph.nodes)}
        dag = _acyclic(graph)
        rank = _assign_ranks(dag, order)
        layered = _split_long_edges(dag, rank)
        layers = _reduce_crossings(layered, _initial_layers(layered, rank, order), self.sweeps)

        horizontal = direction == Direction.LEFT_TO_RIGHT
        along_key, across_key = ("height", "width") if horizontal else ("width", "height")

        def along_size(node) -> float:
            return float(layered.nodes[node].get(along_key, 0.0))

        # Position inside each rank
        along: dict[Hashable, float] = {}
        gaps_by_rank = []
        for layer in layers:
            gaps = [0.0] + [
                (along_size(a) + along_size(b)) / 2 + options.node_sep
                for a, b in zip(layer, layer[1:])
            ]
            gaps_by_rank.append(gaps)
            for node, x in zip(layer, _pack([0.0] * len(layer), gaps)):
                along[node] = x

        for p in range(self.passes):
            downward = p % 2 == 0
            neighbours = layered.predecessors if downward else layered.successors
            indices = range(len(layers)) if downward else range(len(layers) - 1, -1, -1)
            for r in indices:
                layer = layers[r]
                desired = []
                for node in layer:
                    linked = [along[n] for n in neighbours(node)]
                    desired.append(sum(linked) / len(linked) if linked else along[node])
                for node, x in zip(layer, _pack(desired, gaps_by_rank[r])):
                    along[node] = x

        # Position across ranks
        across: dict[int, float] = {}
        edge = 0.0
        for r, layer in enumerate(layers):
            thickness = max(
                (float(layered.nodes[n].get(across_key, 0.0)) for n in layer), default=0.0
            )
            across[r] = edge + thickness / 2
            edge += thickness + options.rank_sep

        real = list(graph.nodes)
        left = min(along[n] - along_size(n) / 2 for n in real)
        positions: dict[Hashable, Position] = {}
        for node in real:
            a = round(along[node] - left, 3)
            c = round(across[rank[node]], 3)
            positions[node] = (c, a) if horizontal else (a, c)
        return positions


# ============================================================================
# Graphviz placer
# ============================================================================


class DotPlacer:
    """Layered placement by Graphviz ``dot`` (network simplex ranking)."""

    def __init__(self, prog: str = "dot"):
        self.prog = prog

    def place(
        self, graph: nx.DiGraph, direction: Direction, options: LayoutOptions
    ) -> dict[Hashable, Position]:
        if graph.number_of_nodes() == 0:
            return {}

        P = pydot.Dot(graph_type="digraph")
        P.set("rankdir", direction.value)
        P.set("nodesep", f"{options.node_sep / POINTS_PER_INCH:.4f}")
        P.set("ranksep", f"{options.rank_sep / POINTS_PER_INCH:.4f}")

        # Plain generated names avoid any quoting of the real node ids.
        names: dict[str, Hashable] = {}
        name_of: dict[Hashable, str] = {}
        for i, (node, data) in enumerate(graph.nodes(data=True)):
            name = f"n{i}"
            names[name] = node
            name_of[node] = name
            P.add_node(
                pydot.Node(
                    name,
                    shape="box",
                    fixedsize="true",
                    label="",
                    width=f"{float(data.get('width', options.node_width)) / POINTS_PER_INCH:.4f}",
                    height=f"{float(data.get('height', options.node_height)) / POINTS_PER_INCH:.4f}",
                )
            )
        for u, v in graph.edges:
            P.add_edge(pydot.Edge(name_of[u], name_of[v]))

        plain = P.create(prog=self.prog, format="plain").decode("utf-8")
        return self._parse_plain(plain, names)

    @staticmethod
    def _parse_plain(plain: str, names: dict[str, Hashable]) -> dict[Hashable, Position]:
        height = 0.0
        positions: dict[Hashable, Position] = {}
        for line in plain.splitlines():
            parts = line.split()
            if not parts:
                continue
            if parts[0] == "graph":
                height = float(parts[3])
            elif parts[0] == "node" and parts[1] in names:
                x, y = float(parts[2]), float(parts[3])
                # Graphviz puts the origin bottom-left; flip to top-left.
                positions[names[parts[1]]] = (
                    round(x * POINTS_PER_INCH, 3),
                    round((height - y) * POINTS_PER_INCH, 3),
                )
        return positions


def get_placer(engine: str) -> Placer:
    if engine == "layered":
        return LayeredPlacer()
    if engine == "dot":
        return DotPlacer()
    raise ValueError(f"Unknown layout engine: {engine}")
